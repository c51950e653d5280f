from __future__ import annotations

import base64
import binascii
from email.utils import parseaddr

from pydantic import BaseModel, ConfigDict, Field

AUDIO_CONTENT_TYPES: frozenset[str] = frozenset({
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/x-wav",
    "audio/mp4",
    "audio/x-m4a",
    "audio/ogg",
    "audio/webm",
    "audio/flac",
})


def is_audio_content_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    # Some mail clients append parameters, e.g. "audio/mpeg; name=memo.mp3"
    return content_type.split(";", 1)[0].strip().lower() in AUDIO_CONTENT_TYPES


class _PostmarkModel(BaseModel):
    # Postmark sends many more fields than we consume
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class InboundAttachment(_PostmarkModel):
    name: str = Field(default="attachment", alias="Name")
    content: str = Field(default="", alias="Content", description="Base64 payload")
    content_type: str = Field(default="application/octet-stream", alias="ContentType")
    content_length: int | None = Field(default=None, alias="ContentLength")

    @property
    def is_audio(self) -> bool:
        return is_audio_content_type(self.content_type)

    def decode(self) -> bytes:
        """Decode the base64 payload, raising ``ValueError`` on malformed content."""
        try:
            return base64.b64decode(self.content, validate=True)
        except (binascii.Error, ValueError) as err:
            raise ValueError(f"Attachment {self.name!r} is not valid base64") from err


class InboundAddress(_PostmarkModel):
    email: str = Field(default="", alias="Email")
    name: str | None = Field(default=None, alias="Name")


class InboundEmail(_PostmarkModel):
    """Postmark inbound webhook payload (the subset the pipeline needs)."""

    from_: str = Field(default="", alias="From")
    from_full: InboundAddress | None = Field(default=None, alias="FromFull")
    subject: str | None = Field(default=None, alias="Subject")
    text_body: str | None = Field(default=None, alias="TextBody")
    attachments: list[InboundAttachment] = Field(default_factory=list, alias="Attachments")

    @property
    def sender(self) -> str:
        """Bare, lower-cased sender address."""
        raw = self.from_full.email if self.from_full and self.from_full.email else self.from_
        _, address = parseaddr(raw)
        return (address or raw).strip().lower()

    @property
    def audio_attachments(self) -> list[InboundAttachment]:
        return [a for a in self.attachments if a.is_audio]
