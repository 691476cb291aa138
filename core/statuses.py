"""The closed set of task statuses and helpers to coerce external values."""
from __future__ import annotations

from typing import Dict

STATUS_PENDING = "Pending"
STATUS_IN_PROGRESS = "In Progress"
STATUS_COMPLETED = "Completed"

STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED)

DEFAULT_STATUS = STATUS_PENDING

# Lower-cased, separator-free spellings seen on the wire.
_ALIASES: Dict[str, str] = {
    "pending": STATUS_PENDING,
    "todo": STATUS_PENDING,
    "inprogress": STATUS_IN_PROGRESS,
    "doing": STATUS_IN_PROGRESS,
    "completed": STATUS_COMPLETED,
    "done": STATUS_COMPLETED,
}

_LABELS: Dict[str, str] = {
    STATUS_PENDING: "todo",
    STATUS_IN_PROGRESS: "doing",
    STATUS_COMPLETED: "done",
}


def normalize_status(value: object) -> str:
    """Clamp external values to the supported statuses, ``Pending`` otherwise."""
    if value is None:
        return DEFAULT_STATUS
    if value in STATUSES:
        return str(value)
    key = "".join(ch for ch in str(value).lower() if ch.isalnum())
    return _ALIASES.get(key, DEFAULT_STATUS)


def toggle_status(value: str) -> str:
    if normalize_status(value) == STATUS_COMPLETED:
        return STATUS_PENDING
    return STATUS_COMPLETED


def status_label(value: str) -> str:
    return _LABELS[normalize_status(value)]


__all__ = [
    "DEFAULT_STATUS",
    "STATUSES",
    "STATUS_COMPLETED",
    "STATUS_IN_PROGRESS",
    "STATUS_PENDING",
    "normalize_status",
    "status_label",
    "toggle_status",
]
