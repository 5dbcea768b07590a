"""HTTP API routers for the rate limiter."""
