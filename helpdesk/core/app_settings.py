"""Runtime settings stored as key/value rows and editable by admins."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

logger = logging.getLogger(__name__)

DEFAULT_APP_SETTINGS: dict[str, str] = {
    "siteName": "TicketHub",
    "supportEmail": "support@example.com",
    "companyName": "TicketHub Inc.",
    "autoCloseDays": "7",
    "emailCustomerEnabled": "true",
    "defaultSlaHours": "48",
}


def merge_with_defaults(stored: Mapping[str, str]) -> dict[str, str]:
    """Overlay stored rows on top of the defaults."""

    merged = dict(DEFAULT_APP_SETTINGS)
    for key, value in stored.items():
        merged[key] = value
    return merged


def filter_updates(payload: Mapping[str, Any]) -> dict[str, str]:
    """Keep only known keys carrying string values."""

    updates: dict[str, str] = {}
    for key, value in payload.items():
        if key in DEFAULT_APP_SETTINGS and isinstance(value, str):
            updates[key] = value
        else:
            logger.debug("Ignoring setting update for key %s", key)
    return updates


def _as_int(values: Mapping[str, str], key: str) -> int:
    raw = values.get(key, DEFAULT_APP_SETTINGS[key])
    try:
        parsed = int(raw)
    except (TypeError, ValueError):
        logger.warning("Setting %s has non-numeric value %r, using default", key, raw)
        return int(DEFAULT_APP_SETTINGS[key])
    if parsed < 1:
        return int(DEFAULT_APP_SETTINGS[key])
    return parsed


def _as_bool(values: Mapping[str, str], key: str) -> bool:
    raw = values.get(key, DEFAULT_APP_SETTINGS[key])
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class AppSettings:
    """Typed view over the merged key/value settings."""

    site_name: str
    support_email: str
    company_name: str
    auto_close_days: int
    email_customer_enabled: bool
    default_sla_hours: int

    @classmethod
    def from_mapping(cls, stored: Mapping[str, str]) -> "AppSettings":
        values = merge_with_defaults(stored)
        return cls(
            site_name=values["siteName"],
            support_email=values["supportEmail"],
            company_name=values["companyName"],
            auto_close_days=_as_int(values, "autoCloseDays"),
            email_customer_enabled=_as_bool(values, "emailCustomerEnabled"),
            default_sla_hours=_as_int(values, "defaultSlaHours"),
        )
