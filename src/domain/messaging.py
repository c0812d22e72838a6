"""
Direct messages between users.

Messages are persisted first and then handed to the MessagePublisher on
the ``conversation:{id}`` channel as a ``new-message`` event. A publish
failure is logged and does not undo the send; clients that missed the
event still see the message when they next load the conversation.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from .exceptions import DeliveryError, NotFoundError, ValidationError
from .models import Conversation, ConversationSummary, Message, MessagePage, PublicIdentity, utcnow
from .pagination import clamp_limit, decode_cursor, encode_cursor
from .ports import CredentialStore, MessagePublisher, MessageRepository

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000
NEW_MESSAGE_EVENT = "new-message"


def conversation_channel(conversation_id: UUID) -> str:
    return f"conversation:{conversation_id}"


def message_payload(message: Message) -> dict[str, object]:
    """JSON-ready event body, keyed the same way as the HTTP API."""
    return {
        "id": str(message.id),
        "conversationId": str(message.conversation_id),
        "senderId": str(message.sender_id),
        "content": message.content,
        "mediaUrl": message.media_url,
        "createdAt": message.created_at.isoformat(),
    }


@dataclass
class MessageService:
    store: CredentialStore
    messages: MessageRepository
    publisher: MessagePublisher
    clock: Callable[[], datetime] = field(default=utcnow)

    def list_conversations(self, user_id: UUID) -> list[ConversationSummary]:
        return [
            self._summary(conversation, user_id)
            for conversation in self.messages.list_conversations(user_id)
        ]

    def open_conversation(self, user_id: UUID, participant_id: UUID) -> tuple[ConversationSummary, bool]:
        """
        Get or create the direct conversation with participant_id.

        Returns:
            The conversation summary and True if it was just created

        Raises:
            ValidationError: Messaging yourself
            NotFoundError: The participant does not exist or is deactivated
        """
        if participant_id == user_id:
            raise ValidationError("cannot start a conversation with yourself")
        with self.store.transaction() as session:
            participant = session.get_identity_by_id(participant_id)
        if participant is None or not participant.is_active:
            raise NotFoundError("user not found")

        conversation, created = self.messages.open_direct(user_id, participant_id, self.clock())
        if created:
            logger.debug("Conversation %s opened by %s", conversation.id, user_id)
        return self._summary(conversation, user_id), created

    def get_messages(
        self, conversation_id: UUID, user_id: UUID, limit: int = 50, cursor: str | None = None
    ) -> MessagePage:
        """
        Page backwards through a conversation and mark it read.

        Each page is returned oldest first; next_cursor continues with
        older messages.
        """
        self._require_participant(conversation_id, user_id)
        limit = clamp_limit(limit)
        rows = self.messages.list_messages(conversation_id, limit + 1, decode_cursor(cursor))
        has_more = len(rows) > limit
        rows = rows[:limit]
        self.messages.mark_read(conversation_id, user_id, self.clock())

        oldest = rows[-1] if has_more else None
        return MessagePage(
            messages=list(reversed(rows)),
            has_more=has_more,
            next_cursor=encode_cursor(oldest.created_at, oldest.id) if oldest else None,
        )

    def send_message(
        self, conversation_id: UUID, user_id: UUID, content: str, media_url: str | None = None
    ) -> Message:
        """
        Raises:
            ValidationError: Content out of bounds
            NotFoundError: Unknown conversation, or the sender is not in it
        """
        content = content.strip()
        if not 1 <= len(content) <= MAX_MESSAGE_LENGTH:
            raise ValidationError(f"message must be 1-{MAX_MESSAGE_LENGTH} characters")
        self._require_participant(conversation_id, user_id)

        message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            sender_id=user_id,
            content=content,
            media_url=media_url,
            created_at=self.clock(),
        )
        self.messages.insert_message(message)
        # The sender has read everything up to their own message
        self.messages.mark_read(conversation_id, user_id, message.created_at)

        try:
            self.publisher.publish(
                conversation_channel(conversation_id), NEW_MESSAGE_EVENT, message_payload(message)
            )
        except DeliveryError as exc:
            logger.warning("Message %s saved but not published: %s", message.id, exc)
        return message

    def unread_count(self, user_id: UUID) -> int:
        return self.messages.count_unread(user_id)

    def _require_participant(self, conversation_id: UUID, user_id: UUID) -> None:
        if not self.messages.is_participant(conversation_id, user_id):
            raise NotFoundError("conversation not found")

    def _summary(self, conversation: Conversation, user_id: UUID) -> ConversationSummary:
        others = [pid for pid in self.messages.participant_ids(conversation.id) if pid != user_id]
        participants: list[PublicIdentity] = []
        with self.store.transaction() as session:
            for pid in others:
                identity = session.get_identity_by_id(pid)
                if identity is not None:
                    participants.append(identity.public())
        return ConversationSummary(
            conversation=conversation,
            participants=participants,
            last_message=self.messages.last_message(conversation.id),
            last_read_at=self.messages.last_read_at(conversation.id, user_id),
        )
