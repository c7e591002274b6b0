from rest_framework import serializers

from recognition.models import FaceProfile


class EnrollmentSerializer(serializers.Serializer):
    """Validate the shape of an enrollment request.

    Vector width and finiteness are checked by :func:`recognition.enrollment.enroll`
    so the rules live next to the only writer of face profiles.
    """

    user_id = serializers.CharField()
    face_embedding = serializers.ListField(child=serializers.FloatField(), required=False)
    face_embeddings = serializers.ListField(
        child=serializers.ListField(child=serializers.FloatField()),
        required=False,
    )

    def validate(self, attrs):
        if not attrs.get("face_embedding") and not attrs.get("face_embeddings"):
            raise serializers.ValidationError("Invalid face embedding format")
        return attrs


class FaceProfileSerializer(serializers.ModelSerializer):
    """Metadata about the caller's enrolled profile; templates never leave the server."""

    class Meta:
        model = FaceProfile
        fields = ["pose_count", "created_at", "updated_at"]
        read_only_fields = fields
