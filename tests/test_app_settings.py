from helpdesk.core.app_settings import AppSettings, filter_updates, merge_with_defaults


def test_defaults_are_merged_under_stored_values():
    merged = merge_with_defaults({"siteName": "Helpdesk ACME"})
    assert merged["siteName"] == "Helpdesk ACME"
    assert merged["autoCloseDays"] == "7"
    assert merged["defaultSlaHours"] == "48"


def test_updates_keep_known_string_values_only():
    updates = filter_updates({"siteName": "X", "unknown": "y", "autoCloseDays": 10})
    assert updates == {"siteName": "X"}


def test_typed_accessors_fall_back_on_bad_values():
    settings = AppSettings.from_mapping(
        {"autoCloseDays": "abc", "defaultSlaHours": "0", "emailCustomerEnabled": "false"}
    )
    assert settings.auto_close_days == 7
    assert settings.default_sla_hours == 48
    assert settings.email_customer_enabled is False


def test_typed_accessors_parse_valid_values():
    settings = AppSettings.from_mapping({"defaultSlaHours": "24"})
    assert settings.default_sla_hours == 24
    assert settings.site_name == "TicketHub"
