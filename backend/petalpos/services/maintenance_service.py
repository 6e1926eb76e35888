# Overview: Service-layer operations for workshop maintenance; due tasks are a projection of batch state.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..models import Batch
from ..signals import maintenance_completed, send_safely
from ..time_utils import coerce_datetime, to_utc_z
from ..validation import ValidationError
from .batch_service import (
    ACTIVE,
    list_batches,
    next_cut_due,
    next_water_due,
    record_cut,
    record_water_change,
)

WATER_CHANGE = "water_change"
CUT = "cut"
TASK_KINDS = (WATER_CHANGE, CUT)

_DUE_BY_KIND = {
    WATER_CHANGE: next_water_due,
    CUT: next_cut_due,
}

_COMPLETE_BY_KIND = {
    WATER_CHANGE: record_water_change,
    CUT: record_cut,
}


@dataclass(frozen=True)
class MaintenanceTask:
    batch_id: int
    kind: str
    due_at: datetime
    overdue: bool
    product_id: int | None = None
    bucket_code: str | None = None

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "kind": self.kind,
            "due_at": to_utc_z(self.due_at),
            "overdue": self.overdue,
            "product_id": self.product_id,
            "bucket_code": self.bucket_code,
        }


def _tasks_for(batch: Batch, now: datetime):
    if batch.status != ACTIVE:
        return
    for kind in TASK_KINDS:
        due_at = _DUE_BY_KIND[kind](batch)
        if due_at <= now:
            yield MaintenanceTask(
                batch_id=batch.id,
                kind=kind,
                due_at=due_at,
                overdue=(now - due_at).total_seconds() > 0,
                product_id=batch.product_id,
                bucket_code=batch.bucket_code,
            )


class DueTasks:
    """
    Due maintenance as of `now`.

    Nothing is queried until iteration starts, and every iteration reads
    live batch state again, so the same object can be re-walked after
    tasks are completed.
    """

    def __init__(self, now: datetime):
        self.now = now

    def __iter__(self):
        entries = []
        for batch in list_batches(status=ACTIVE):
            for task in _tasks_for(batch, self.now):
                entries.append((task.due_at, batch.created_at, batch.id, TASK_KINDS.index(task.kind), task))
        # Earliest due_at is the most overdue
        entries.sort(key=lambda entry: entry[:4])
        for entry in entries:
            yield entry[-1]


def _coerce_now(now) -> datetime:
    try:
        return coerce_datetime(now)
    except ValueError as e:
        raise ValidationError(str(e))


def list_due_tasks(now=None) -> DueTasks:
    return DueTasks(_coerce_now(now))


def complete_task(batch_id: int, kind: str, now=None) -> Batch:
    """Mark a task done by stamping the owning batch; the task then drops out."""
    complete = _COMPLETE_BY_KIND.get(kind)
    if complete is None:
        raise ValidationError(f"kind must be one of {', '.join(TASK_KINDS)}")
    batch = complete(batch_id, _coerce_now(now))
    send_safely(maintenance_completed, batch=batch, kind=kind)
    return batch
