from django.urls import path

from .views import ConversationListView, ConversationMessagesView

app_name = 'conversations'

urlpatterns = [
    path('', ConversationListView.as_view(), name='conversation-list'),
    path('<int:conversation_id>/messages/', ConversationMessagesView.as_view(), name='conversation-messages'),
]
