import logging

from fastapi import APIRouter, Depends

from ..auth.dependencies import AuthUser, authenticate_token
from ..core.validation import validate_identifier
from ..schemas import ConversationCreate, MessageCreate
from ..services import chat, push
from ..services.realtime import conversation_room, manager


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/conversations")
async def list_conversations(user: AuthUser = Depends(authenticate_token)):
    return {"success": True, "conversations": chat.list_conversations(user.id)}


@router.post("/conversations")
async def create_conversation(body: ConversationCreate, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("participant_id", body.participant_id)
    return {"success": True, "conversation": chat.get_or_create_conversation(user.id, body.participant_id)}


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(conversation_id: str, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("conversation_id", conversation_id)
    return {"success": True, "messages": chat.list_messages(conversation_id, user.id)}


@router.post("/conversations/{conversation_id}/messages", status_code=201)
async def send_message(conversation_id: str, body: MessageCreate, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("conversation_id", conversation_id)
    result = chat.send_message(conversation_id, user.id, body.content, body.message_type)
    message = result["message"]

    await manager.send_to_room(conversation_room(conversation_id), {
        "type": "new_message",
        "data": {**message, "sender": {"id": user.id, "username": user.username}},
    })
    if result["recipient_id"]:
        push.notify_user(
            result["recipient_id"],
            f"New message from {user.username or 'a Cars-G user'}",
            message["content"][:120],
            "chat",
            f"/chat/{conversation_id}",
        )
    return {"success": True, "message": message}


@router.delete("/messages/{message_id}")
async def delete_message(message_id: str, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("message_id", message_id)
    message = chat.delete_message(message_id, user.id)
    await manager.send_to_room(conversation_room(message["conversation_id"]), {
        "type": "message_deleted",
        "data": {"messageId": message_id, "conversationId": message["conversation_id"]},
    })
    logger.info(f"Message {message_id} deleted by {user.id}")
    return {"success": True}
