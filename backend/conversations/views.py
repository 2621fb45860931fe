from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from common.exceptions import DomainError
from common.http import error_response

from .directory import ConversationDirectory
from .serializers import (
    ConversationSerializer,
    ConversationCreateSerializer,
    MessageSerializer,
    MessageCreateSerializer,
    MessagePageSerializer,
)


class ConversationListView(APIView):
    """
    GET  -> Conversations the caller participates in
    POST -> Find or create the conversation with another user
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        directory = ConversationDirectory()
        conversations = directory.conversations_for(request.user)
        serializer = ConversationSerializer(conversations, many=True, context={"request": request})
        return Response({"conversations": serializer.data})

    def post(self, request):
        ser = ConversationCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        directory = ConversationDirectory()
        try:
            conversation = directory.find_or_create(
                [request.user.id, ser.validated_data["participant_id"]]
            )
        except DomainError as exc:
            return error_response(exc)

        serializer = ConversationSerializer(conversation, context={"request": request})
        return Response({"conversation": serializer.data}, status=status.HTTP_200_OK)


class ConversationMessagesView(APIView):
    """
    GET  -> One page of messages; marks them read for the caller
    POST -> Send a message to the conversation
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, conversation_id: int):
        page_ser = MessagePageSerializer(data=request.query_params)
        page_ser.is_valid(raise_exception=True)
        page = page_ser.validated_data["page"]
        limit = page_ser.validated_data["limit"]

        directory = ConversationDirectory()
        try:
            conversation = directory.get_for_participant(conversation_id, request.user)
        except DomainError as exc:
            return error_response(exc)

        messages, total = directory.messages_page(conversation, page=page, limit=limit)
        directory.mark_read(conversation, request.user)

        return Response({
            "messages": MessageSerializer(messages, many=True).data,
            "pagination": {
                "page": page,
                "limit": limit,
                "total_messages": total,
            },
        })

    def post(self, request, conversation_id: int):
        ser = MessageCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        directory = ConversationDirectory()
        try:
            conversation = directory.get_for_participant(conversation_id, request.user)
            message = directory.record_message(conversation, request.user, ser.validated_data["body"])
        except DomainError as exc:
            return error_response(exc)

        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)
