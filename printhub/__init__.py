"""PrintHub: order fulfillment core for a 3D-printing shop."""

__version__ = "0.1.0"
