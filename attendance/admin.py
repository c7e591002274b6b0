"""Admin registrations for the attendance app."""

from django.contrib import admin

from .models import AttendanceRecord, Notification, OfficeSetting


@admin.register(AttendanceRecord)
class AttendanceRecordAdmin(admin.ModelAdmin):
    """Records are written by the admission engine only, so the admin is read-only."""

    list_display = ("user", "check_in_time", "check_out_time", "status", "total_minutes")
    list_filter = ("status", "verification_method")
    search_fields = ("user__username", "user__email")
    date_hierarchy = "check_in_time"
    ordering = ("-check_in_time",)

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(OfficeSetting)
class OfficeSettingAdmin(admin.ModelAdmin):
    list_display = ("key", "value", "updated_at")
    search_fields = ("key", "description")


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "message", "user", "is_read", "created_at")
    list_filter = ("type", "is_read")
    actions = ["mark_read"]

    @admin.action(description="Mark selected notifications as read")
    def mark_read(self, request, queryset):
        updated = queryset.update(is_read=True)
        self.message_user(request, f"{updated} notification(s) marked as read.")
