from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

ChangeAction = Literal["created", "updated", "deleted"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WsEnvelope(BaseModel):
    """Frame pushed to WebSocket subscribers."""
    type: str = Field(..., description="'<entity>.<action>' for changes, 'subscribed' on connect.")
    payload: Dict[str, Any] = Field(default_factory=dict)
    at: datetime = Field(default_factory=_utcnow)
    user_id: Optional[UUID] = Field(default=None, description="Profile owning the changed row.")
    channel: Optional[str] = Field(default=None, description="Topic the frame was published on.")


class ChangeEvent(BaseModel):
    """
    Row change notification. Carries identifiers only; subscribers re-fetch
    the lists they display.
    """
    entity: Literal["visit", "order", "route", "client", "call"]
    action: ChangeAction
    entity_id: Optional[UUID] = None
    profile_id: Optional[UUID] = Field(default=None, description="Seller or driver the row belongs to.")
    at: datetime = Field(default_factory=_utcnow)

    def envelope(self, channel: str) -> WsEnvelope:
        return WsEnvelope(
            type=f"{self.entity}.{self.action}",
            payload=self.model_dump(mode="json"),
            user_id=self.profile_id,
            channel=channel,
        )
