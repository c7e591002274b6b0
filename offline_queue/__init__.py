"""Device-side queue for attendance attempts captured while offline."""

from .reconciler import QueueReconciler, ReconcileResult
from .store import CorruptPendingAttempt, PendingAttempt, PendingAttemptStore, QueueStorageError
from .transport import EngineTransport, HttpEngineTransport, TransportFailure, classify_response

__all__ = [
    "CorruptPendingAttempt",
    "EngineTransport",
    "HttpEngineTransport",
    "PendingAttempt",
    "PendingAttemptStore",
    "QueueReconciler",
    "QueueStorageError",
    "ReconcileResult",
    "TransportFailure",
    "classify_response",
]
