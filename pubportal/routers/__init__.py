"""API routers, one module per portal."""
