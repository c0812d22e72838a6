"""
API v1 message routes - Direct conversations and unread counts.

A sent message is stored, then published as ``new-message`` on the
``conversation:{id}`` channel of the configured MessagePublisher.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from src.api.dependencies import get_message_service, require_user
from src.api.models import (
    ConversationListData,
    ConversationOut,
    Envelope,
    ErrorResponse,
    MessageOut,
    MessagePageData,
    OpenConversationRequest,
    SendMessageRequest,
    UnreadCountData,
)
from src.domain.messaging import MessageService
from src.domain.models import AuthenticatedUser
from src.domain.pagination import MAX_PAGE_SIZE

router = APIRouter(prefix="/messages", tags=["messages"], dependencies=[Depends(require_user)])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Conversation not found"}}


@router.get(
    "/conversations",
    response_model=Envelope[ConversationListData],
    summary="Your conversations, most recently active first",
)
def list_conversations(
    user: AuthenticatedUser = Depends(require_user),
    service: MessageService = Depends(get_message_service),
) -> Envelope[ConversationListData]:
    summaries = service.list_conversations(user.id)
    return Envelope(data=ConversationListData(conversations=[ConversationOut.from_summary(s) for s in summaries]))


@router.post(
    "/conversations",
    response_model=Envelope[ConversationOut],
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"model": Envelope[ConversationOut], "description": "Conversation already existed"},
        404: {"model": ErrorResponse, "description": "User not found"},
    },
    summary="Open a direct conversation",
)
def open_conversation(
    request_data: OpenConversationRequest,
    response: Response,
    user: AuthenticatedUser = Depends(require_user),
    service: MessageService = Depends(get_message_service),
) -> Envelope[ConversationOut]:
    summary, created = service.open_conversation(user.id, request_data.participant_id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return Envelope(data=ConversationOut.from_summary(summary))


@router.get(
    "/conversations/{conversation_id}",
    response_model=Envelope[MessagePageData],
    responses=_NOT_FOUND,
    summary="Read a conversation",
    description="Messages oldest first within the page; pass nextCursor back as `cursor` "
    "for older messages. Marks the conversation read.",
)
def get_messages(
    conversation_id: UUID,
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    cursor: str | None = Query(default=None, max_length=200),
    user: AuthenticatedUser = Depends(require_user),
    service: MessageService = Depends(get_message_service),
) -> Envelope[MessagePageData]:
    page = service.get_messages(conversation_id, user.id, limit=limit, cursor=cursor)
    return Envelope(data=MessagePageData.from_page(page))


@router.post(
    "/conversations/{conversation_id}",
    response_model=Envelope[MessageOut],
    status_code=status.HTTP_201_CREATED,
    responses=_NOT_FOUND,
    summary="Send a message",
)
def send_message(
    conversation_id: UUID,
    request_data: SendMessageRequest,
    user: AuthenticatedUser = Depends(require_user),
    service: MessageService = Depends(get_message_service),
) -> Envelope[MessageOut]:
    message = service.send_message(
        conversation_id, user.id, request_data.content, media_url=request_data.media_url
    )
    return Envelope(data=MessageOut.from_message(message))


@router.get("/unread", response_model=Envelope[UnreadCountData], summary="Unread message count")
def unread_count(
    user: AuthenticatedUser = Depends(require_user),
    service: MessageService = Depends(get_message_service),
) -> Envelope[UnreadCountData]:
    return Envelope(data=UnreadCountData(unread_count=service.unread_count(user.id)))
