from django.contrib import admin
from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "recipient", "sender", "type", "is_read", "created_at")
    list_filter = ("type", "is_read")
    search_fields = ("recipient__username", "message")
    readonly_fields = ("created_at",)
