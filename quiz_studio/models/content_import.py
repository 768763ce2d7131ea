import enum
from typing import Any

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from quiz_studio.models.base import Base, JSONType, TimestampMixin


class ImportStatus(str, enum.Enum):
    UPLOADED = "UPLOADED"
    EXTRACTED = "EXTRACTED"
    AI_SUGGESTED = "AI_SUGGESTED"
    FINAL_APPROVED = "FINAL_APPROVED"


class ContentImport(Base, TimestampMixin):
    __tablename__ = "content_imports"

    id: Mapped[int] = mapped_column(primary_key=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_bucket: Mapped[str] = mapped_column(String(128), nullable=False)
    source_path: Mapped[str] = mapped_column(Text, nullable=False)
    source_mime: Mapped[str | None] = mapped_column(String(255), default=None)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ImportStatus.UPLOADED.value,
        index=True,
    )
    raw_extract: Mapped[dict[str, Any] | None] = mapped_column(JSONType, default=None)
    ai_suggested: Mapped[dict[str, Any] | None] = mapped_column(JSONType, default=None)
    final_approved: Mapped[Any | None] = mapped_column(JSONType, default=None)
