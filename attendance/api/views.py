import logging

from django.conf import settings
from django_ratelimit.core import is_ratelimited

from rest_framework import permissions, status, viewsets
from rest_framework.response import Response
from rest_framework.views import APIView

from attendance.admission import AdmissionEngine, AdmissionError
from attendance.api.serializers import AttendanceRecordSerializer, AttendanceVerifySerializer
from attendance.attempts import AttendanceAttempt, InvalidAttempt
from attendance.models import AttendanceRecord
from attendance.outcomes import Admitted, ErrorCode

logger = logging.getLogger(__name__)


def _invalid_request(message, details=None):
    body = {"success": False, "error": ErrorCode.INVALID_REQUEST.value, "message": message}
    if details is not None:
        body["details"] = details
    return Response(body, status=status.HTTP_400_BAD_REQUEST)


class AttendanceVerifyView(APIView):
    """
    Admit or reject a check-in/check-out attempt.

    The body is validated for shape here; every business decision belongs to
    :class:`attendance.admission.AdmissionEngine`.
    """

    permission_classes = [permissions.IsAuthenticated]
    engine_class = AdmissionEngine

    def _rate_limited(self, request) -> bool:
        rate = getattr(settings, "RECOGNITION_ATTENDANCE_RATE_LIMIT", "10/m")
        if not rate:
            return False
        return is_ratelimited(
            request=request,
            group="attendance.verify",
            key="user_or_ip",
            rate=rate,
            method="POST",
            increment=True,
        )

    def post(self, request):
        if self._rate_limited(request):
            logger.warning(
                "Attendance rate limit triggered for user %s",
                request.user.pk,
                extra={"event": "attendance_rate_limited"},
            )
            return Response(
                {"success": False, "error": "RATE_LIMITED", "message": "Too many attendance attempts. Please wait."},
                status=status.HTTP_429_TOO_MANY_REQUESTS,
            )

        serializer = AttendanceVerifySerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_request("Invalid attendance request.", serializer.errors)

        try:
            attempt = AttendanceAttempt.from_payload(serializer.validated_data)
        except InvalidAttempt as exc:
            return _invalid_request(str(exc))

        try:
            outcome = self.engine_class().admit(request.user, attempt)
        except AdmissionError as exc:
            return Response(
                {"success": False, "error": "SERVICE_UNAVAILABLE", "message": str(exc)},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        if isinstance(outcome, Admitted):
            return Response(outcome.to_response(), status=status.HTTP_200_OK)
        if outcome.code is ErrorCode.UNAUTHORIZED:
            return Response(outcome.to_response(), status=status.HTTP_403_FORBIDDEN)
        return Response(outcome.to_response(), status=status.HTTP_400_BAD_REQUEST)


class AttendanceRecordViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for viewing attendance records.
    """

    serializer_class = AttendanceRecordSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        user = self.request.user
        queryset = AttendanceRecord.objects.select_related("user").order_by("-check_in_time")

        if not user.is_staff:
            queryset = queryset.filter(user=user)

        # Filter by date range
        start_date = self.request.query_params.get("start_date")
        end_date = self.request.query_params.get("end_date")

        if start_date:
            queryset = queryset.filter(check_in_time__date__gte=start_date)
        if end_date:
            queryset = queryset.filter(check_in_time__date__lte=end_date)

        return queryset
