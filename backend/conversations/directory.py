"""
Conversation directory.

Finds or creates the single conversation for a set of users and keeps the
per-participant unread counters in step with messages being sent and read.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import F

from common.exceptions import ForbiddenError, NotFoundError, ValidationError
from realtime.publisher import EventPublisher, default_publisher, user_group

from .models import Conversation, ConversationParticipant, Message

User = get_user_model()
logger = logging.getLogger(__name__)


class ConversationNotFoundError(NotFoundError):
    """Conversation not found."""


def normalize_participants(participant_ids: Iterable) -> List[int]:
    """Deduplicate and sort participant ids so any ordering maps to one key."""
    try:
        ids = sorted({int(pid) for pid in participant_ids})
    except (TypeError, ValueError):
        raise ValidationError("Participant ids must be integers")

    if len(ids) < 2:
        raise ValidationError("A conversation needs at least two distinct participants")
    return ids


def participant_key(participant_ids: Iterable) -> str:
    return ":".join(str(pid) for pid in normalize_participants(participant_ids))


class ConversationDirectory:
    """Find-or-create and unread bookkeeping for conversations."""

    def __init__(self, publisher: Optional[EventPublisher] = None):
        self.publisher = publisher or default_publisher()

    def find_or_create(self, participant_ids: Iterable) -> Conversation:
        """
        Return the conversation for exactly these participants, creating it
        on first use.

        Safe under concurrent callers: the unique ``participant_key`` lets
        only one insert win; the loser reads the winner's row.
        """
        ids = normalize_participants(participant_ids)
        key = ":".join(str(pid) for pid in ids)

        existing = Conversation.objects.filter(participant_key=key).first()
        if existing:
            return existing

        found = User.objects.filter(id__in=ids).count()
        if found != len(ids):
            raise NotFoundError("User not found")

        try:
            with transaction.atomic():
                conversation = Conversation.objects.create(participant_key=key)
                ConversationParticipant.objects.bulk_create([
                    ConversationParticipant(conversation=conversation, user_id=pid, unread_count=0)
                    for pid in ids
                ])
        except IntegrityError:
            logger.info("Conversation %s created concurrently, reusing it", key)
            return Conversation.objects.get(participant_key=key)

        logger.info("Created conversation #%s for %s", conversation.id, key)
        return conversation

    def get_for_participant(self, conversation_id, user) -> Conversation:
        conversation = (
            Conversation.objects
            .filter(id=conversation_id, memberships__user=user)
            .select_related("last_message")
            .first()
        )
        if conversation is None:
            raise ConversationNotFoundError("Conversation not found")
        return conversation

    def conversations_for(self, user):
        """Conversations the user belongs to, most recently active first."""
        return (
            Conversation.objects
            .filter(memberships__user=user)
            .select_related("last_message")
            .prefetch_related("memberships__user")
            .order_by("-updated_at")
        )

    def unread_counts(self, conversation: Conversation) -> Dict[int, int]:
        return dict(
            conversation.memberships.values_list("user_id", "unread_count")
        )

    @transaction.atomic
    def record_message(self, conversation: Conversation, sender, body: str) -> Message:
        """Append a message and bump every other participant's unread counter."""
        if not body or not body.strip():
            raise ValidationError("Message body cannot be empty")

        if not conversation.memberships.filter(user=sender).exists():
            raise ForbiddenError("Only participants can post in this conversation")

        message = Message.objects.create(conversation=conversation, sender=sender, body=body)

        (
            ConversationParticipant.objects
            .filter(conversation=conversation)
            .exclude(user=sender)
            .update(unread_count=F("unread_count") + 1)
        )

        conversation.last_message = message
        conversation.save(update_fields=["last_message", "updated_at"])
        return message

    def messages_page(self, conversation: Conversation, page: int = 1, limit: int = 20) -> Tuple[list, int]:
        """Return one page of messages (newest first) and the total count."""
        offset = (page - 1) * limit
        qs = conversation.messages.select_related("sender")
        return list(qs[offset:offset + limit]), qs.count()

    def mark_read(self, conversation: Conversation, reader) -> int:
        """
        Reset the reader's unread counter, mark messages from others as read
        and tell the other participants.

        Returns the number of messages newly marked as read.
        """
        with transaction.atomic():
            updated = (
                Message.objects
                .filter(conversation=conversation, is_read=False)
                .exclude(sender=reader)
                .update(is_read=True)
            )
            ConversationParticipant.objects.filter(
                conversation=conversation, user=reader
            ).update(unread_count=0)

        other_ids = (
            conversation.memberships
            .exclude(user=reader)
            .values_list("user_id", flat=True)
        )
        for other_id in other_ids:
            self.publisher.publish(
                user_group(other_id),
                "messages_read",
                {"conversation_id": conversation.id, "reader_id": reader.id},
            )
        return updated
