"""HTTP layer of the helpdesk service."""
