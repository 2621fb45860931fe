from django.db import models
from django.conf import settings


class Notification(models.Model):
    """A message for one user, created as a side effect of ride activity"""

    TYPE_CHOICES = [
        ('ride_joined', 'Ride Joined'),
        ('ride_completed', 'Ride Completed'),
        ('ride_cancelled', 'Ride Cancelled'),
        ('ride_removal', 'Removed From Ride'),
        ('passenger_left', 'Passenger Left'),
        ('ride_rejected', 'Ride Rejected'),
    ]

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sent_notifications'
    )

    type = models.CharField(max_length=32, choices=TYPE_CHOICES)
    message = models.TextField()
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'notifications'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['recipient', 'is_read'], name='notif_recipient_read_idx'),
        ]

    def __str__(self):
        return f"{self.type} -> {self.recipient} ({'read' if self.is_read else 'unread'})"
