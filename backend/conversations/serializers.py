from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from .models import Conversation, Message


class MessageSerializer(serializers.ModelSerializer):
    sender = UserBasicSerializer(read_only=True)

    class Meta:
        model = Message
        fields = ['id', 'conversation', 'sender', 'body', 'is_read', 'created_at']
        read_only_fields = fields


class ConversationSerializer(serializers.ModelSerializer):
    """
    Conversation summary for list previews.

    ``unread_count`` and ``other_participants`` are relative to the
    requesting user passed in the serializer context.
    """
    participants = serializers.SerializerMethodField()
    other_participants = serializers.SerializerMethodField()
    last_message = MessageSerializer(read_only=True)
    unread_count = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            'id', 'participants', 'other_participants', 'last_message',
            'unread_count', 'created_at', 'updated_at',
        ]

    def _viewer_id(self):
        request = self.context.get('request')
        return getattr(getattr(request, 'user', None), 'id', None)

    def get_participants(self, obj):
        users = [m.user for m in obj.memberships.all()]
        return UserBasicSerializer(users, many=True).data

    def get_other_participants(self, obj):
        viewer_id = self._viewer_id()
        users = [m.user for m in obj.memberships.all() if m.user_id != viewer_id]
        return UserBasicSerializer(users, many=True).data

    def get_unread_count(self, obj):
        viewer_id = self._viewer_id()
        for membership in obj.memberships.all():
            if membership.user_id == viewer_id:
                return membership.unread_count
        return 0


class ConversationCreateSerializer(serializers.Serializer):
    participant_id = serializers.IntegerField(min_value=1)


class MessageCreateSerializer(serializers.Serializer):
    body = serializers.CharField(max_length=5000)


class MessagePageSerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=20)
