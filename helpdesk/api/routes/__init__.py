"""Route modules exposed by the API package."""

from . import categories, dashboard, ping, public, settings, support_levels, tickets, users

__all__ = [
    "categories",
    "dashboard",
    "ping",
    "public",
    "settings",
    "support_levels",
    "tickets",
    "users",
]
