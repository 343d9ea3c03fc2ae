"""Script file model for versioned script attachments."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.script import Script
    from app.models.user import User


class ScriptFileType(str, Enum):
    """Kind of document attached to a script."""

    SCREENPLAY = "SCREENPLAY"
    PITCHDECK = "PITCHDECK"
    TREATMENT = "TREATMENT"
    ONELINE_ORDER = "ONELINE_ORDER"
    STORYBOARD = "STORYBOARD"
    TEAM_PROFILE = "TEAM_PROFILE"


class ScriptFile(Base):
    """Model for one uploaded version of a script document."""

    __tablename__ = "script_files"

    __table_args__ = (
        UniqueConstraint("script_id", "file_type", "version", name="uq_script_files_version"),
        # At most one latest row per (script, type)
        Index(
            "uq_script_files_latest",
            "script_id",
            "file_type",
            unique=True,
            sqlite_where=text("is_latest = 1"),
            postgresql_where=text("is_latest"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    script_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("scripts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    file_type: Mapped[str] = mapped_column(String(20), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Locator of the blob, e.g. /api/files/<key>
    file_url: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_latest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    uploaded_by: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

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

    # Relationships
    script: Mapped["Script"] = relationship("Script", back_populates="files")
    uploader: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return (
            f"<ScriptFile(id={self.id}, script_id={self.script_id}, "
            f"type='{self.file_type}', version={self.version}, latest={self.is_latest})>"
        )
