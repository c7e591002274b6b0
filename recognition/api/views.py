import logging

from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from recognition.api.serializers import EnrollmentSerializer, FaceProfileSerializer
from recognition.enrollment import EnrollmentError, enroll
from recognition.models import FaceProfile

logger = logging.getLogger(__name__)


class EnrollFaceView(APIView):
    """
    Create or replace the caller's face profile.

    ``GET`` reports whether the caller is enrolled; ``POST`` upserts the
    templates for the authenticated user only.
    """

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        profile = FaceProfile.objects.filter(user=request.user).first()
        if profile is None:
            return Response({"enrolled": False})
        return Response({"enrolled": True, **FaceProfileSerializer(profile).data})

    def post(self, request):
        serializer = EnrollmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"success": False, "error": "Invalid face embedding format", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        data = serializer.validated_data
        if str(request.user.pk) != data["user_id"]:
            logger.warning(
                "User %s attempted to enroll templates for user %s",
                request.user.pk,
                data["user_id"],
            )
            return Response(
                {"success": False, "error": "Unauthorized to enroll for another user"},
                status=status.HTTP_403_FORBIDDEN,
            )

        try:
            profile = enroll(
                request.user,
                embedding=data.get("face_embedding"),
                embeddings=data.get("face_embeddings"),
            )
        except EnrollmentError as exc:
            return Response(
                {"success": False, "error": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(
            {
                "success": True,
                "message": "Enrollment successful",
                "poses_stored": profile.pose_count,
            },
            status=status.HTTP_200_OK,
        )
