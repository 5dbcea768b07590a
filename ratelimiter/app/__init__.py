"""Rate limiter service application."""
