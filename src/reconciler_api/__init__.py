"""FastAPI transport for the reconciliation service."""
