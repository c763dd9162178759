"""Domain services: pricing, printers, lifecycle, sales, tracking and notifications."""
