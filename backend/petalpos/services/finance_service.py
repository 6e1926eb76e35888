# Overview: Service-layer operations for the transaction recorder; append-only financial log.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..errors import InvalidAmount
from ..extensions import db
from ..models import Transaction
from ..time_utils import coerce_datetime, to_utc_z
from ..validation import ValidationError
"""
Transaction Recorder Invariants (authoritative)

- Append-only: there is no update or delete path. Corrections are new
  offsetting entries.
- amount_cents is a strictly positive magnitude; `type` carries direction.
- Entries written by the stock ledger or order composer are flushed inside
  the caller's DB transaction and committed together with the stock change.
"""

INCOME = "income"
EXPENSE = "expense"
TRANSACTION_TYPES = {INCOME, EXPENSE}


def record_transaction(
    *,
    description: str,
    amount_cents: int,
    type: str,
    date=None,
    category: str | None = None,
    related_order_id: int | None = None,
    related_batch_id: int | None = None,
    actor: str | None = None,
    commit: bool = True,
) -> Transaction:
    """Append one immutable financial entry."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidAmount("amount must be a positive integer", details={"amount_cents": amount_cents})

    if type not in TRANSACTION_TYPES:
        raise ValidationError("type must be income or expense")

    description = (description or "").strip()
    if not description:
        raise ValidationError("description is required")

    try:
        occurred = coerce_datetime(date, field="date")
    except ValueError as e:
        raise ValidationError(str(e))

    # Ledger-generated descriptions can embed a full-length note; the manual
    # route rejects overlong input before it gets here
    tx = Transaction(
        description=description[:255],
        amount_cents=amount_cents,
        type=type,
        date=occurred,
        category=category,
        related_order_id=related_order_id,
        related_batch_id=related_batch_id,
        actor=actor,
    )
    db.session.add(tx)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return tx


def _filtered(query, *, type: str | None, since: datetime | None, until: datetime | None):
    if type is not None:
        if type not in TRANSACTION_TYPES:
            raise ValidationError("type must be income or expense")
        query = query.filter(Transaction.type == type)
    if since is not None:
        query = query.filter(Transaction.date >= since)
    if until is not None:
        query = query.filter(Transaction.date <= until)
    return query


def list_transactions(
    *,
    type: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 200,
) -> list[Transaction]:
    q = _filtered(db.session.query(Transaction), type=type, since=since, until=until)
    return q.order_by(Transaction.date.desc(), Transaction.id.desc()).limit(limit).all()


def get_summary(*, since: datetime | None = None, until: datetime | None = None) -> dict:
    """Income, expense and net totals; `until` is inclusive."""
    q = _filtered(
        db.session.query(Transaction.type, func.coalesce(func.sum(Transaction.amount_cents), 0)),
        type=None,
        since=since,
        until=until,
    )
    totals = {row[0]: int(row[1]) for row in q.group_by(Transaction.type).all()}
    income = totals.get(INCOME, 0)
    expense = totals.get(EXPENSE, 0)
    return {
        "since": to_utc_z(since),
        "until": to_utc_z(until),
        "income_cents": income,
        "expense_cents": expense,
        "net_cents": income - expense,
    }
