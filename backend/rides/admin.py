"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import RideRequest, RideParticipant, RidePreference


class RideParticipantInline(admin.TabularInline):
    model = RideParticipant
    extra = 0
    readonly_fields = ('user', 'joined_at')
    can_delete = False
    max_num = 0


class RidePreferenceInline(admin.TabularInline):
    model = RidePreference
    extra = 0


@admin.register(RideRequest)
class RideRequestAdmin(admin.ModelAdmin):
    """Ride Request admin"""
    list_display = ['id', 'owner', 'origin', 'destination', 'vehicle_type', 'status',
                    'total_accepted', 'total_passengers', 'ride_time']
    list_filter = ['status', 'vehicle_type', 'ride_time']
    search_fields = ['owner__username', 'origin', 'destination', 'note']
    readonly_fields = ['total_accepted', 'conversation', 'linked_conversations', 'created_at', 'updated_at']
    date_hierarchy = 'ride_time'
    inlines = [RideParticipantInline, RidePreferenceInline]
