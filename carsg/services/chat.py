import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from .supabase_service import get_client, utcnow_iso


logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000
MESSAGE_TYPES = ('text', 'image', 'location')


def other_participant(conversation: Dict[str, Any], user_id: str) -> Optional[str]:
    if conversation.get('participant1_id') == user_id:
        return conversation.get('participant2_id')
    if conversation.get('participant2_id') == user_id:
        return conversation.get('participant1_id')
    return None


def list_conversations(user_id: str) -> List[Dict[str, Any]]:
    try:
        supabase: Client = get_client()
        result = (
            supabase
            .table('chat_conversations')
            .select('*')
            .or_(f"participant1_id.eq.{user_id},participant2_id.eq.{user_id}")
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to fetch conversations for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch conversations")

    conversations = result.data or []
    conversations.sort(key=lambda c: c.get('last_message_at') or c.get('created_at') or '', reverse=True)
    return conversations


def get_conversation(conversation_id: str, user_id: str) -> Dict[str, Any]:
    """Return the conversation if ``user_id`` takes part in it."""
    try:
        supabase: Client = get_client()
        result = supabase.table('chat_conversations').select('*').eq('id', conversation_id).limit(1).execute()
    except Exception as e:
        logger.error(f"Failed to fetch conversation {conversation_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch conversation")

    if not result.data:
        raise HTTPException(status_code=404, detail="Conversation not found")
    conversation = result.data[0]
    if other_participant(conversation, user_id) is None:
        raise HTTPException(status_code=403, detail="You are not a participant in this conversation")
    return conversation


def get_or_create_conversation(user_id: str, other_user_id: str) -> Dict[str, Any]:
    if user_id == other_user_id:
        raise HTTPException(status_code=400, detail="Cannot start a conversation with yourself")

    pair_filter = (
        f"and(participant1_id.eq.{user_id},participant2_id.eq.{other_user_id}),"
        f"and(participant1_id.eq.{other_user_id},participant2_id.eq.{user_id})"
    )
    try:
        supabase: Client = get_client()
        existing = supabase.table('chat_conversations').select('*').or_(pair_filter).limit(1).execute()
        if existing.data:
            return existing.data[0]

        result = supabase.table('chat_conversations').insert({
            'participant1_id': user_id,
            'participant2_id': other_user_id,
        }).execute()
    except Exception as e:
        logger.error(f"Failed to create conversation between {user_id} and {other_user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create conversation")

    if not result.data:
        raise HTTPException(status_code=500, detail="Failed to create conversation")
    return result.data[0]


def list_messages(conversation_id: str, user_id: str) -> List[Dict[str, Any]]:
    get_conversation(conversation_id, user_id)
    try:
        supabase: Client = get_client()
        result = (
            supabase
            .table('chat_messages')
            .select('*')
            .eq('conversation_id', conversation_id)
            .order('created_at')
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to fetch messages for {conversation_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch messages")
    return result.data or []


def send_message(conversation_id: str, sender_id: str, content: str, message_type: str = 'text') -> Dict[str, Any]:
    """Store a message. Returns ``{"message": ..., "recipient_id": ...}``."""
    content = (content or '').strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message content is required")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise HTTPException(status_code=400, detail=f"Message is longer than {MAX_MESSAGE_LENGTH} characters")
    if message_type not in MESSAGE_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid message type. Allowed: {', '.join(MESSAGE_TYPES)}")

    conversation = get_conversation(conversation_id, sender_id)
    try:
        supabase: Client = get_client()
        result = supabase.table('chat_messages').insert({
            'conversation_id': conversation_id,
            'sender_id': sender_id,
            'content': content,
            'message_type': message_type,
        }).execute()
    except Exception as e:
        logger.error(f"Failed to save message in {conversation_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to send message")

    if not result.data:
        raise HTTPException(status_code=500, detail="Failed to send message")

    try:
        supabase.table('chat_conversations').update({'last_message_at': utcnow_iso()}).eq('id', conversation_id).execute()
    except Exception as e:
        logger.warning(f"Failed to update conversation timestamp for {conversation_id}: {e}")

    return {"message": result.data[0], "recipient_id": other_participant(conversation, sender_id)}


def delete_message(message_id: str, user_id: str) -> Dict[str, Any]:
    try:
        supabase: Client = get_client()
        result = supabase.table('chat_messages').select('*').eq('id', message_id).limit(1).execute()
    except Exception as e:
        logger.error(f"Failed to fetch message {message_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete message")

    if not result.data:
        raise HTTPException(status_code=404, detail="Message not found")
    message = result.data[0]
    if message.get('sender_id') != user_id:
        raise HTTPException(status_code=403, detail="You can only delete your own messages")

    try:
        supabase.table('chat_messages').delete().eq('id', message_id).execute()
    except Exception as e:
        logger.error(f"Failed to delete message {message_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete message")
    return message
