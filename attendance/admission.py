"""Server-side admission decisions for attendance attempts.

An attempt is admitted only when every check passes, evaluated in a fixed
order so the first failure names the rejection:

1. the authenticated principal is the user named in the attempt,
2. the submitted embedding matches one of the user's enrolled templates,
3. the reported location lies inside the office geofence,
4. the reported SSID is allowlisted (skipped when the allowlist is empty),
5. the direction is consistent with the user's open record.

Rejections are returned as :class:`~attendance.outcomes.Rejected` values.
Exceptions are reserved for infrastructure failures (missing office
configuration, unreadable templates, database errors) and surface as
:class:`AdmissionError` so transports can treat them as retryable.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone as dt_timezone
from typing import Any, Callable, Mapping, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from attendance.attempts import AttendanceAttempt, Direction
from attendance.geofence import within_radius
from attendance.models import AttendanceRecord
from attendance.notifications import notify
from attendance.office import OfficeConfig, OfficeConfigError, load_office_config
from attendance.outcomes import Admitted, ErrorCode, Outcome, Rejected
from recognition.models import FaceProfile
from recognition.pipeline import ComparatorError, NoEnrolledTemplates, compare_against_all
from src.common.crypto import TemplateDecodeError

logger = logging.getLogger(__name__)

# Shifts shorter than this many minutes close as ``early_out`` unless already late.
FULL_SHIFT_MINUTES = 480

Notifier = Callable[[str, Any, datetime, Mapping[str, Any]], None]


class AdmissionError(RuntimeError):
    """The decision could not be taken; the attempt may be retried later."""


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class AdmissionEngine:
    """Evaluate attendance attempts and persist the admitted ones.

    Args:
        config_loader: Returns the authoritative :class:`OfficeConfig`.
        notifier: Called after commit with ``(type, user_id, timestamp, details)``.
            Its failures are logged and never affect the outcome.
        threshold: Match threshold; ``RECOGNITION_DISTANCE_THRESHOLD`` when ``None``.
        clock: Source of the authoritative admission time.
    """

    def __init__(
        self,
        *,
        config_loader: Callable[[], OfficeConfig] = load_office_config,
        notifier: Optional[Notifier] = notify,
        threshold: Optional[float] = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._config_loader = config_loader
        self._notifier = notifier
        self._threshold = threshold
        self._clock = clock

    @property
    def threshold(self) -> float:
        if self._threshold is not None:
            return self._threshold
        return float(settings.RECOGNITION_DISTANCE_THRESHOLD)

    def admit(self, principal: Any, attempt: AttendanceAttempt) -> Outcome:
        """Decide on ``attempt`` submitted by ``principal``.

        Raises:
            AdmissionError: an infrastructure failure prevented a decision.
        """

        if (
            principal is None
            or not getattr(principal, "is_authenticated", False)
            or str(principal.pk) != str(attempt.user_id)
        ):
            return self._reject(attempt, ErrorCode.UNAUTHORIZED, "User ID mismatch")

        try:
            return self._evaluate(principal, attempt)
        except OfficeConfigError as exc:
            logger.error("Office configuration unusable: %s", exc)
            raise AdmissionError(str(exc)) from exc
        except (TemplateDecodeError, ComparatorError) as exc:
            logger.exception("Face templates for user %s could not be compared", attempt.user_id)
            raise AdmissionError("Stored face profile is unusable.") from exc
        except DatabaseError as exc:
            logger.exception("Database failure while admitting user %s", attempt.user_id)
            raise AdmissionError("Attendance storage is unavailable.") from exc

    def _evaluate(self, principal: Any, attempt: AttendanceAttempt) -> Outcome:
        profile = FaceProfile.objects.filter(user_id=principal.pk).first()
        if profile is None:
            return self._reject(attempt, ErrorCode.NO_FACE_PROFILE, "User verification profile not found.")

        try:
            match = compare_against_all(attempt.embedding, profile.get_embeddings(), self.threshold)
        except NoEnrolledTemplates:
            return self._reject(attempt, ErrorCode.NO_FACE_PROFILE, "User verification profile not found.")
        if not match.is_match:
            return self._reject(
                attempt,
                ErrorCode.FACE_MISMATCH,
                f"Face verification failed. (Diff: {match.best_distance:.2f}, "
                f"threshold {self.threshold:.2f})",
            )

        config = self._config_loader()
        inside, distance = within_radius(
            attempt.location, config.office_location, config.allowed_radius_meters
        )
        if not inside:
            return self._reject(
                attempt,
                ErrorCode.LOCATION_INVALID,
                f"You are {round_half_up(distance)}m away. "
                f"Max allowed: {config.allowed_radius_meters:g}m.",
            )

        ssid = attempt.network.normalized_ssid
        if config.network_check_enabled and ssid not in config.wifi_allowlist:
            return self._reject(attempt, ErrorCode.WIFI_INVALID, f"Wi-Fi {ssid or '(none)'} not authorized.")

        try:
            with transaction.atomic():
                outcome = self._record(principal, attempt, config, distance, match.best_distance)
        except IntegrityError:
            if attempt.direction is not Direction.CHECK_IN:
                raise
            # A concurrent check-in for the same user won the race.
            return self._reject(attempt, ErrorCode.ALREADY_CHECKED_IN, "You are already checked in.")

        if isinstance(outcome, Admitted):
            self._schedule_notification(attempt, outcome)
        return outcome

    def _record(
        self,
        principal: Any,
        attempt: AttendanceAttempt,
        config: OfficeConfig,
        distance: float,
        face_distance: float,
    ) -> Outcome:
        # Serialise admissions per user on the user row.
        get_user_model().objects.select_for_update().filter(pk=principal.pk).first()
        open_record = (
            AttendanceRecord.objects.select_for_update()
            .filter(user_id=principal.pk, check_out_time__isnull=True)
            .order_by("-check_in_time")
            .first()
        )
        now = self._clock()
        location = {**attempt.location.to_dict(), "distance_meters": round(distance, 2)}
        network = attempt.network.to_dict()

        if attempt.direction is Direction.CHECK_IN:
            if open_record is not None:
                return self._reject(attempt, ErrorCode.ALREADY_CHECKED_IN, "You are already checked in.")

            local_time = timezone.localtime(now).time()
            status = (
                AttendanceRecord.Status.LATE
                if local_time > config.working_start
                else AttendanceRecord.Status.PRESENT
            )
            record = AttendanceRecord.objects.create(
                user_id=principal.pk,
                check_in_time=now,
                location_snapshot={"check_in": location},
                network_snapshot={"check_in": network},
                status=status,
                verification_method=AttendanceRecord.VERIFICATION_FACE_ID_SECURE,
                face_distance=face_distance,
                client_captured_at=_aware(attempt.client_timestamp),
            )
            return Admitted(
                attendance_id=record.pk,
                status=str(record.status),
                time=now,
                direction=attempt.direction.value,
            )

        if open_record is None:
            return self._reject(
                attempt, ErrorCode.NO_ACTIVE_CHECKIN, "No active check-in found to check out from."
            )

        total_minutes = max(0, round_half_up((now - open_record.check_in_time).total_seconds() / 60))
        if total_minutes < FULL_SHIFT_MINUTES and open_record.status != AttendanceRecord.Status.LATE:
            open_record.status = AttendanceRecord.Status.EARLY_OUT
        open_record.check_out_time = now
        open_record.total_minutes = total_minutes
        open_record.location_snapshot = {**open_record.location_snapshot, "check_out": location}
        open_record.network_snapshot = {**open_record.network_snapshot, "check_out": network}
        open_record.save(
            update_fields=[
                "check_out_time",
                "total_minutes",
                "status",
                "location_snapshot",
                "network_snapshot",
            ]
        )
        return Admitted(
            attendance_id=open_record.pk,
            status=str(open_record.status),
            time=now,
            direction=attempt.direction.value,
            total_minutes=total_minutes,
        )

    def _reject(self, attempt: AttendanceAttempt, code: ErrorCode, message: str) -> Rejected:
        logger.info(
            "Attendance %s rejected for user %s: %s",
            attempt.direction.value,
            attempt.user_id,
            code.value,
            extra={"event": "attendance_rejected", "error_code": code.value},
        )
        return Rejected(code=code, message=message)

    def _schedule_notification(self, attempt: AttendanceAttempt, outcome: Admitted) -> None:
        logger.info(
            "Attendance %s admitted for user %s (record %s, status %s)",
            outcome.direction,
            attempt.user_id,
            outcome.attendance_id,
            outcome.status,
            extra={"event": "attendance_admitted", "attendance_id": outcome.attendance_id},
        )
        if self._notifier is None:
            return

        details: dict[str, Any] = {"attendance_id": outcome.attendance_id, "status": outcome.status}
        if outcome.total_minutes is not None:
            details["total_minutes"] = outcome.total_minutes

        def _send() -> None:
            try:
                self._notifier(outcome.direction, attempt.user_id, outcome.time, details)
            except Exception:
                logger.warning(
                    "Notification for attendance record %s failed",
                    outcome.attendance_id,
                    exc_info=True,
                )

        transaction.on_commit(_send)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or timezone.is_aware(value):
        return value
    return timezone.make_aware(value, dt_timezone.utc)


__all__ = ["AdmissionEngine", "AdmissionError", "FULL_SHIFT_MINUTES", "round_half_up"]
