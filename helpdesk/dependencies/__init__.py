"""FastAPI dependencies for the helpdesk API."""
