# Overview: Post-commit notification hooks (outbound alerts plug in here).

from __future__ import annotations

from blinker import Namespace
from flask import current_app

_signals = Namespace()

# Sent after the database commit; receivers get keyword payloads.
shrinkage_recorded = _signals.signal("shrinkage-recorded")
order_committed = _signals.signal("order-committed")
order_delivered = _signals.signal("order-delivered")
maintenance_completed = _signals.signal("maintenance-completed")


def send_safely(signal, sender=None, **payload) -> None:
    """
    Fire-and-forget delivery.

    Each receiver runs independently; a failing receiver is logged and never
    propagates, so the ledger mutation that triggered it stands.
    """
    for receiver in list(signal.receivers_for(sender)):
        try:
            receiver(sender, **payload)
        except Exception:
            current_app.logger.exception("Notification receiver failed for %s", signal.name)
