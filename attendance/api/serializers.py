from rest_framework import serializers

from attendance.attempts import Direction
from attendance.models import AttendanceRecord
from recognition.extraction import EMBEDDING_DIMENSION


class LocationSerializer(serializers.Serializer):
    lat = serializers.FloatField(min_value=-90.0, max_value=90.0)
    lng = serializers.FloatField(min_value=-180.0, max_value=180.0)


class WifiInfoSerializer(serializers.Serializer):
    ssid = serializers.CharField(required=False, allow_null=True, allow_blank=True, trim_whitespace=False)
    bssid = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class AttendanceVerifySerializer(serializers.Serializer):
    """Shape of ``POST attendance/verify/``; identity and decisions are left to the engine."""

    user_id = serializers.CharField()
    face_embedding = serializers.ListField(
        child=serializers.FloatField(),
        min_length=EMBEDDING_DIMENSION,
        max_length=EMBEDDING_DIMENSION,
    )
    location = LocationSerializer()
    wifi_info = WifiInfoSerializer(required=False, allow_null=True)
    type = serializers.ChoiceField(choices=[direction.value for direction in Direction])
    client_timestamp = serializers.DateTimeField(required=False, allow_null=True)


class AttendanceRecordSerializer(serializers.ModelSerializer):
    """Serializer for admitted attendance records."""

    username = serializers.SerializerMethodField()
    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = AttendanceRecord
        fields = [
            "id",
            "username",
            "check_in_time",
            "check_out_time",
            "status",
            "status_display",
            "total_minutes",
            "verification_method",
            "location_snapshot",
            "network_snapshot",
            "created_at",
        ]
        read_only_fields = fields

    def get_username(self, obj):
        return obj.user.get_username() if obj.user_id else "Unknown"
