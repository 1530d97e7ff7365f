from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional

from app.utils.profiles import ProfileSnapshot


class Message(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: datetime
    read: bool = False


class ListingSummary(BaseModel):
    title: str = "Listing unavailable"
    images: List[str] = Field(default_factory=list)


class LastMessage(BaseModel):
    content: str
    created_at: datetime


class Conversation(BaseModel):
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    listing: ListingSummary
    buyer: ProfileSnapshot
    seller: ProfileSnapshot
    last_message: Optional[LastMessage] = None

    def other_party(self, user_id: str) -> ProfileSnapshot:
        return self.seller if str(user_id) == self.buyer_id else self.buyer


# Message seller
class StartConversationModel(BaseModel):
    listing_id: str


class StartConversationResponseModel(BaseModel):
    conversation: Conversation
    is_new: bool


# Send Messages
class SendMessageModel(BaseModel):
    conversation_id: str
    content: str

    @field_validator("content")
    @classmethod
    def validate_content(cls, content: str) -> str:
        if not content.strip():
            raise ValueError("Message must not be empty.")
        return content


class SendMessageResponseModel(BaseModel):
    message: Message


# Get Conversations
class GetConversationsResponseModel(BaseModel):
    conversations: List[Conversation]


# Get messages
class GetMessagesResponseModel(BaseModel):
    messages: List[Message]
