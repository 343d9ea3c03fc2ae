"""Activity model for the script audit timeline."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.script import Script


class ActivityType(str, Enum):
    """Kind of timeline event."""

    SCRIPT_SUBMITTED = "SCRIPT_SUBMITTED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ASSIGNMENT_CREATED = "ASSIGNMENT_CREATED"
    ASSIGNMENT_COMPLETED = "ASSIGNMENT_COMPLETED"
    FEEDBACK_ADDED = "FEEDBACK_ADDED"
    FILE_UPLOADED = "FILE_UPLOADED"
    FILE_DELETED = "FILE_DELETED"
    SCRIPT_EDITED = "SCRIPT_EDITED"
    SCRIPT_DELETED = "SCRIPT_DELETED"
    MEETING_SCHEDULED = "MEETING_SCHEDULED"


class Activity(Base):
    """Model representing one entry of a script's activity timeline."""

    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    script_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("scripts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Null for actions performed by the system or an admin without a user row
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    script: Mapped["Script"] = relationship("Script", back_populates="activities")

    def __repr__(self) -> str:
        return f"<Activity(id={self.id}, script_id={self.script_id}, type='{self.type}')>"
