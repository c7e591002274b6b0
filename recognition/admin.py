"""Admin registrations for the recognition app."""

from django.contrib import admin

from .models import FaceProfile


@admin.register(FaceProfile)
class FaceProfileAdmin(admin.ModelAdmin):
    """Show who is enrolled without exposing the encrypted templates."""

    list_display = ("user", "pose_count", "created_at", "updated_at")
    search_fields = ("user__username", "user__email")
    ordering = ("-updated_at",)
    exclude = ("encrypted_embeddings",)
    readonly_fields = ("user", "pose_count", "created_at", "updated_at")

    def has_add_permission(self, request) -> bool:
        return False
