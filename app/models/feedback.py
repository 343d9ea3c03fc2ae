"""Feedback model for reviewer comments."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.script import Script


class FeedbackCategory(str, Enum):
    """Category of a feedback entry."""

    GENERAL = "GENERAL"
    SCRIPT_QUALITY = "SCRIPT_QUALITY"
    MARKETABILITY = "MARKETABILITY"
    PRODUCTION_NOTES = "PRODUCTION_NOTES"
    DEVELOPMENT_SUGGESTIONS = "DEVELOPMENT_SUGGESTIONS"


class Feedback(Base):
    """Model representing reviewer feedback on a script."""

    __tablename__ = "feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    script_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("scripts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assignment_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("assignments.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    comments: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(30), default=FeedbackCategory.GENERAL.value)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    script: Mapped["Script"] = relationship("Script", back_populates="feedback")

    def __repr__(self) -> str:
        return f"<Feedback(id={self.id}, script_id={self.script_id}, category='{self.category}')>"
