"""Request bodies for the advisor API."""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from advisor.orchestrator import DETECT_SPECIALIST, RequestedSpecialist
from advisor.specialists import SpecialistType
from infrastructure.config import MAX_IMAGES, MESSAGE_MAX_LENGTH


class RetryRequest(BaseModel):
    specialist_type: Optional[SpecialistType] = None

    def requested_specialist(self, pinned: Optional[str] = None) -> RequestedSpecialist:
        """
        An explicit value wins, null included. Then the conversation's pinned
        specialist, then keyword detection.
        """
        if "specialist_type" in self.model_fields_set:
            return self.specialist_type
        if pinned is not None:
            return pinned
        return DETECT_SPECIALIST


class ChatRequest(RetryRequest):
    message: str = Field(..., min_length=1, max_length=MESSAGE_MAX_LENGTH)
    conversation_id: Optional[UUID] = None
    image_urls: List[str] = Field(default_factory=list, max_length=MAX_IMAGES)
