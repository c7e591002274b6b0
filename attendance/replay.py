"""Replay queued attempts straight into the admission engine.

Used where the queue and the engine share a process (kiosk deployments,
management commands and tests), so no HTTP round trip is needed.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from django.db import DatabaseError

from attendance.admission import AdmissionEngine, AdmissionError
from attendance.attempts import AttendanceAttempt
from offline_queue.transport import SubmitResult, TransportFailure

logger = logging.getLogger(__name__)


class InProcessTransport:
    def __init__(self, principal: Any, engine: Optional[AdmissionEngine] = None) -> None:
        self.principal = principal
        self.engine = engine or AdmissionEngine()

    def submit(self, attempt: AttendanceAttempt) -> SubmitResult:
        try:
            return self.engine.admit(self.principal, attempt)
        except AdmissionError as exc:
            return TransportFailure(f"Admission unavailable: {exc}")
        except DatabaseError as exc:
            logger.warning("Database error while replaying attempt: %s", exc)
            return TransportFailure(f"Database error: {exc}")


__all__ = ["InProcessTransport"]
