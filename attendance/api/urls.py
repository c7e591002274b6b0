from django.urls import include, path

from rest_framework.routers import DefaultRouter

from .views import AttendanceRecordViewSet, AttendanceVerifyView

router = DefaultRouter()
router.register(r"attendance/records", AttendanceRecordViewSet, basename="attendance-record")

urlpatterns = [
    path("attendance/verify/", AttendanceVerifyView.as_view(), name="attendance-verify"),
    path("", include(router.urls)),
]
