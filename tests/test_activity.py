from helpdesk.tickets import activity
from helpdesk.tickets.state import ActivityType, TicketPriority, TicketStatus

from conftest import NOW, make_level


def test_record_builds_immutable_entry():
    entry = activity.record(
        "ticket-1",
        "agent-1",
        ActivityType.STATUS_CHANGE,
        "desc",
        NOW,
        old_value="open",
        new_value="closed",
    )
    assert entry.type == ActivityType.STATUS_CHANGE
    assert (entry.old_value, entry.new_value) == ("open", "closed")


def test_descriptions_use_indonesian_labels():
    assert activity.describe_created() == "Tiket berhasil dibuat"
    assert (
        activity.describe_status_change(TicketStatus.OPEN, TicketStatus.RESOLVED)
        == "Status diubah dari Menunggu ke Selesai"
    )
    assert (
        activity.describe_priority_change(TicketPriority.LOW, TicketPriority.URGENT)
        == "Prioritas diubah dari Rendah ke Mendesak"
    )
    assert (
        activity.describe_reopen(TicketStatus.OPEN, by_customer=True)
        == "Status diubah ke Menunggu (balasan pelanggan)"
    )


def test_escalation_and_attachment_descriptions():
    level = make_level("L2", 2)
    assert activity.describe_escalation(level, None) == "Tiket dieskalasi ke Level L2 (L2)"
    assert activity.describe_escalation(level, "butuh akses DB").endswith(": butuh akses DB")
    assert activity.describe_reply(0) == "Balasan ditambahkan"
    assert activity.describe_reply(2) == "Balasan ditambahkan dengan 2 lampiran"
    assert activity.describe_attachments_added(3) == "3 lampiran ditambahkan"


def test_public_whitelist_excludes_internal_types():
    assert ActivityType.NOTE not in activity.PUBLIC_ACTIVITY_TYPES
    assert ActivityType.ASSIGN not in activity.PUBLIC_ACTIVITY_TYPES
    assert ActivityType.CUSTOMER_REPLY in activity.PUBLIC_ACTIVITY_TYPES
