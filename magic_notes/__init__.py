"""Magic Notes - Meeting recording analysis with summaries, action items and transcripts."""

__version__ = "0.1.0"

from .export import to_markdown, to_plain_text
from .grouping import group_transcript
from .history import HistoryStore
from .models import (
    ActionItem,
    FullAnalysis,
    HistoryItem,
    KeyPoint,
    MeetingSummary,
    Preferences,
    TranscriptEntry,
)

__all__ = [
    "ActionItem",
    "FullAnalysis",
    "HistoryItem",
    "HistoryStore",
    "KeyPoint",
    "MeetingSummary",
    "Preferences",
    "TranscriptEntry",
    "group_transcript",
    "to_markdown",
    "to_plain_text",
]
