"""Keep the cached office configuration in step with stored settings."""

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from attendance.models import OfficeSetting
from attendance.office import invalidate_office_config


@receiver(post_save, sender=OfficeSetting, dispatch_uid="attendance_office_setting_saved")
@receiver(post_delete, sender=OfficeSetting, dispatch_uid="attendance_office_setting_deleted")
def _invalidate_office_config(sender, **kwargs) -> None:
    invalidate_office_config()
