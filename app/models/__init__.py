"""Database models package."""

from app.models.activity import Activity, ActivityType
from app.models.assignment import Assignment, AssignmentStatus
from app.models.feedback import Feedback, FeedbackCategory
from app.models.meeting import Meeting, MeetingParticipant, MeetingStatus
from app.models.script import Script, ScriptStatus, ScriptType
from app.models.script_file import ScriptFile, ScriptFileType
from app.models.user import User, UserRole

__all__ = [
    "Activity",
    "ActivityType",
    "Assignment",
    "AssignmentStatus",
    "Feedback",
    "FeedbackCategory",
    "Meeting",
    "MeetingParticipant",
    "MeetingStatus",
    "Script",
    "ScriptFile",
    "ScriptFileType",
    "ScriptStatus",
    "ScriptType",
    "User",
    "UserRole",
]
