"""Script model for submitted film/TV scripts."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.activity import Activity
    from app.models.assignment import Assignment
    from app.models.feedback import Feedback
    from app.models.meeting import Meeting
    from app.models.script_file import ScriptFile


class ScriptType(str, Enum):
    """Format of a script."""

    FEATURE_FILM = "FEATURE_FILM"
    WEB_SERIES = "WEB_SERIES"


class ScriptStatus(str, Enum):
    """Review status of a script."""

    SUBMITTED = "SUBMITTED"
    READING = "READING"
    CONSIDERED = "CONSIDERED"
    DEVELOPMENT = "DEVELOPMENT"
    GREENLIT = "GREENLIT"
    IN_PRODUCTION = "IN_PRODUCTION"
    ON_HOLD = "ON_HOLD"
    REJECTED = "REJECTED"


class Script(Base):
    """Model representing a submitted script."""

    __tablename__ = "scripts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    writers: Mapped[str] = mapped_column(String(255), default="")
    logline: Mapped[str] = mapped_column(Text, default="")
    synopsis: Mapped[str] = mapped_column(Text, default="")

    type: Mapped[str] = mapped_column(String(20), default=ScriptType.FEATURE_FILM.value)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ScriptStatus.SUBMITTED.value,
        index=True,
    )

    # Locator of the cover image blob; advisory only, no FK to storage
    cover_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    submitted_by: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Metadata
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships. Deletion is cascaded by the database (ON DELETE CASCADE);
    # passive_deletes keeps the ORM from loading and deleting children itself.
    files: Mapped[list["ScriptFile"]] = relationship(
        "ScriptFile",
        back_populates="script",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ScriptFile.version",
    )
    assignments: Mapped[list["Assignment"]] = relationship(
        "Assignment",
        back_populates="script",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    feedback: Mapped[list["Feedback"]] = relationship(
        "Feedback",
        back_populates="script",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    activities: Mapped[list["Activity"]] = relationship(
        "Activity",
        back_populates="script",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    meetings: Mapped[list["Meeting"]] = relationship(
        "Meeting",
        back_populates="script",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Script(id={self.id}, title='{self.title}', status='{self.status}')>"
