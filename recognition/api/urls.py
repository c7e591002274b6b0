from django.urls import path

from .views import EnrollFaceView

urlpatterns = [
    path("enroll/", EnrollFaceView.as_view(), name="face-enroll"),
]
