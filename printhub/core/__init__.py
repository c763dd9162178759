# printhub/core/__init__.py
"""Configuration, database, logging, errors and request dependencies."""
