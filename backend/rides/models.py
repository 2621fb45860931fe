from django.db import models
from django.conf import settings


class RideRequest(models.Model):
    """Pooled ride offered by its owner to other campus users"""

    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    VEHICLE_CHOICES = [
        ('AutoRickshaw', 'Auto Rickshaw'),
        ('CNG', 'CNG'),
        ('Car', 'Car'),
        ('Hicks', 'Hicks'),
    ]

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='created_rides'
    )

    # Route
    origin = models.CharField(max_length=255)
    destination = models.CharField(max_length=255)

    total_fare = models.DecimalField(max_digits=10, decimal_places=2)
    vehicle_type = models.CharField(max_length=20, choices=VEHICLE_CHOICES)

    # Capacity; total_accepted always equals the number of participants
    total_passengers = models.PositiveSmallIntegerField()
    total_accepted = models.PositiveSmallIntegerField(default=0)

    ride_time = models.DateTimeField(db_index=True)
    note = models.TextField(blank=True, default='')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)

    # Joined users, never including the owner
    participants = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through='RideParticipant',
        related_name='joined_rides'
    )

    conversation = models.ForeignKey(
        'conversations.Conversation',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='rides'
    )

    # Every owner+joiner conversation provisioned for this ride
    linked_conversations = models.ManyToManyField(
        'conversations.Conversation',
        blank=True,
        related_name='linked_rides'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'ride_requests'
        ordering = ['ride_time']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_passengers__gte=1),
                name='ride_capacity_positive'
            ),
            models.CheckConstraint(
                condition=models.Q(total_accepted__lte=models.F('total_passengers')),
                name='ride_accepted_within_capacity'
            ),
        ]

    def __str__(self):
        return f"Ride #{self.id} - {self.origin} -> {self.destination} - {self.status}"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def seats_left(self):
        return max(0, self.total_passengers - self.total_accepted)


class RideParticipant(models.Model):
    """One occupied seat: a user who joined a ride."""

    ride = models.ForeignKey(
        RideRequest,
        on_delete=models.CASCADE,
        related_name='memberships'
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ride_memberships'
    )

    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'ride_participants'
        ordering = ['joined_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'user'],
                name='unique_ride_participant'
            )
        ]

    def __str__(self):
        return f"{self.user} on ride #{self.ride_id}"


class RidePreference(models.Model):
    """Soft co-passenger preference shown to people browsing rides."""

    GENDER_CHOICES = [
        ('Male', 'Male'),
        ('Female', 'Female'),
        ('Other', 'Other'),
    ]

    ride = models.ForeignKey(
        RideRequest,
        on_delete=models.CASCADE,
        related_name='preferences'
    )

    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    age_range = models.CharField(max_length=20, blank=True)
    institution = models.CharField(max_length=150, blank=True)

    class Meta:
        db_table = 'ride_preferences'

    def __str__(self):
        parts = [p for p in (self.gender, self.age_range, self.institution) if p]
        return f"Ride #{self.ride_id} prefers {', '.join(parts) or 'anyone'}"
