"""Message and attachment snapshots pulled from Slack channel history.

Both models are frozen: they represent read-only snapshots of what Slack
returned for a single ingestion run.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Attachment(BaseModel):
    """A file attached to a Slack message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Slack file ID")
    filename: str = Field(default="", description="Original file name")
    height: int = Field(default=0, description="Pixel height, 0 for non-image files")
    width: int = Field(default=0, description="Pixel width, 0 for non-image files")
    size: int = Field(default=0, description="Size in bytes")
    url: str = Field(default="", description="Private download URL")
    proxy_url: str = Field(default="", description="Permalink to the file in the Slack UI")

    @classmethod
    def from_slack(cls, payload: Dict[str, Any]) -> "Attachment":
        """Build an attachment from an entry of a message's `files` list.

        Missing optional fields (dimensions on non-image files, hidden files
        without URLs) fall back to zero values.
        """
        return cls(
            id=payload["id"],
            filename=payload.get("name") or payload.get("title") or "",
            height=int(payload.get("original_h") or 0),
            width=int(payload.get("original_w") or 0),
            size=int(payload.get("size") or 0),
            url=payload.get("url_private") or "",
            proxy_url=payload.get("permalink") or "",
        )


class Message(BaseModel):
    """A Slack channel message.

    `id` is the Slack `ts` string, which is unique within a channel and also
    serves as the pagination cursor. `document_id` qualifies it with the
    channel so documents from different channels never collide.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Slack message timestamp (ts)")
    channel_id: str
    author_id: str = ""
    content: str = ""
    timestamp: datetime
    attachments: List[Attachment] = Field(default_factory=list)

    @property
    def document_id(self) -> str:
        return f"{self.channel_id}:{self.id}"

    @classmethod
    def from_slack(cls, payload: Dict[str, Any], channel_id: Optional[str] = None) -> "Message":
        """Build a message from a `conversations.history` entry.

        History entries do not carry their channel, so callers pass the
        channel they fetched from. Bot messages have no `user` and are
        attributed to their `bot_id`.
        """
        ts = str(payload["ts"])
        return cls(
            id=ts,
            channel_id=channel_id or payload.get("channel", ""),
            author_id=payload.get("user") or payload.get("bot_id") or "",
            content=payload.get("text") or "",
            timestamp=datetime.fromtimestamp(float(ts), tz=timezone.utc),
            attachments=[Attachment.from_slack(f) for f in payload.get("files", []) if f.get("id")],
        )
