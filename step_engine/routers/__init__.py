"""API routers for the step engine service."""
