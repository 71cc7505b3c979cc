"""
API request and response schemas.
What it defines:
- Input payloads
- Response formats
- Validation rules

And, the main purpose:
Ensure structured communication between client and server.
"""


from typing import List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, StrictBool, StrictInt, StrictStr

Language = Literal["en", "ru"]


class ChatTurn(BaseModel):
    id: Union[StrictInt, StrictStr]
    text: StrictStr = Field(..., min_length=1, max_length=10000)
    isUser: StrictBool


class ChatRequest(BaseModel):
    messages: List[ChatTurn] = Field(..., min_length=1, max_length=100)
    chatId: Optional[UUID] = None
    language: Language = "en"


class TaskGenerationRequest(BaseModel):
    language: Language = "en"


class DeleteChatRequest(BaseModel):
    chatId: UUID


class TaskUpdateRequest(BaseModel):
    taskId: UUID
    completed: StrictBool
