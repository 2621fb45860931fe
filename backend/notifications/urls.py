from django.urls import path

from .views import NotificationListView, NotificationCountView, NotificationMarkReadView

app_name = 'notifications'

urlpatterns = [
    path('', NotificationListView.as_view(), name='notification-list'),
    path('count/', NotificationCountView.as_view(), name='notification-count'),
    path('mark-read/', NotificationMarkReadView.as_view(), name='notification-mark-read'),
]
