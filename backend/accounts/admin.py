from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin panel for the campus User model"""

    list_display = [
        "username",
        "email",
        "institution",
        "gender",
        "is_active",
        "is_staff",
    ]

    list_filter = [
        "gender",
        "is_active",
        "is_staff",
        "date_joined",
    ]

    search_fields = [
        "username",
        "email",
        "institution",
    ]

    ordering = ("username",)

    fieldsets = BaseUserAdmin.fieldsets + (
        (
            "Campus Profile",
            {
                "fields": (
                    "institution",
                    "gender",
                    "date_of_birth",
                    "phone_number",
                    "profile_picture",
                )
            },
        ),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        (
            "Campus Profile",
            {
                "fields": (
                    "institution",
                    "gender",
                )
            },
        ),
    )
