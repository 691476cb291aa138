"""ORM models exposed by the offline task client."""
from .task import Task
from .pending_op import PendingOp
from .identity_map import IdMapping

__all__ = ["Task", "PendingOp", "IdMapping"]
