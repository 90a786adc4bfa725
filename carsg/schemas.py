from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class SupabaseTokenExchange(BaseModel):
    access_token: str


class RefreshRequest(BaseModel):
    refresh_token: str


class SendVerificationRequest(BaseModel):
    email: str
    username: Optional[str] = None


class VerifyEmailRequest(BaseModel):
    email: str
    code: str


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    address: Optional[str] = None


class ReportCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: Literal['infrastructure', 'safety', 'environmental', 'public services', 'other'] = 'other'
    priority: Literal['low', 'medium', 'high'] = 'medium'
    location: Optional[Location] = None
    images: List[str] = Field(default_factory=list, max_length=5)
    idempotency_key: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str


class DispatchRequest(BaseModel):
    assigned_group: str
    priority_level: Optional[int] = None
    assigned_patroller_name: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class RatingRequest(BaseModel):
    stars: int
    comment: Optional[str] = None


class ConversationCreate(BaseModel):
    participant_id: str


class MessageCreate(BaseModel):
    content: str
    message_type: str = 'text'


class PushRegister(BaseModel):
    token: str
    platform: str = 'web'
    user_agent: Optional[str] = None


class PushUnregister(BaseModel):
    token: str


class CloudinaryResource(BaseModel):
    publicId: str
    resourceType: str = 'image'


class BatchDeleteRequest(BaseModel):
    resources: List[CloudinaryResource]


class CommentCreate(BaseModel):
    comment: str = Field(..., min_length=1, max_length=2000)
    comment_type: Literal['comment', 'status_update', 'assignment', 'resolution'] = 'comment'


class CommentUpdate(BaseModel):
    comment: str = Field(..., min_length=1, max_length=2000)
