"""
NOTIFICATIONS App - Customer device registry

Device tokens of customer apps, used for order notices (no partner found,
partner assigned, status changes).
"""

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone


# Active devices kept per user; registering one more retires the oldest
MAX_ACTIVE_DEVICES = 3


class DeviceType(models.TextChoices):
    IOS = 'ios', 'iOS'
    ANDROID = 'android', 'Android'
    WEB = 'web', 'Web'


class UserDeviceManager(models.Manager):

    @transaction.atomic
    def register(self, user, device_id, device_type, name='', platform='', app_version=''):
        """
        Register (or refresh) a device for a user.

        Returns:
            UserDevice instance
        """
        device = self.filter(user=user, device_id=device_id).first()
        if device is not None:
            device.is_active = True
            device.last_active = timezone.now()
            device.save(update_fields=['is_active', 'last_active'])
            return device

        active = self.filter(user=user, is_active=True).order_by('last_active', 'pk')
        overflow = active.count() - (MAX_ACTIVE_DEVICES - 1)
        if overflow > 0:
            stale_ids = list(active.values_list('pk', flat=True)[:overflow])
            self.filter(pk__in=stale_ids).update(is_active=False)

        return self.create(
            user=user,
            device_id=device_id,
            device_type=device_type,
            name=name,
            platform=platform,
            app_version=app_version,
        )


class UserDevice(models.Model):
    """A customer app installation able to receive push notifications."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='devices',
        verbose_name="User"
    )
    device_id = models.CharField(max_length=255, verbose_name="Device token")
    device_type = models.CharField(max_length=10, choices=DeviceType.choices)
    name = models.CharField(max_length=100, blank=True)
    platform = models.CharField(max_length=50, blank=True)
    app_version = models.CharField(max_length=20, blank=True)
    is_active = models.BooleanField(default=True)
    last_active = models.DateTimeField(default=timezone.now, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = UserDeviceManager()

    class Meta:
        verbose_name = "User device"
        verbose_name_plural = "User devices"
        constraints = [
            models.UniqueConstraint(fields=['user', 'device_id'], name='unique_user_device'),
        ]

    def __str__(self):
        return f"{self.user} - {self.device_type} {self.name}"
