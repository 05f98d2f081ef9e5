"""Route registration modules for the Calvin REST API."""
