from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class TranscriptEntry(BaseModel):
    """One speaker turn as returned by the model."""
    model_config = ConfigDict(frozen=True)

    speaker: str
    text: str
    timestamp: str  # HH:MM:SS


class KeyPoint(BaseModel):
    """Key point or decision with the moment it was discussed."""
    model_config = ConfigDict(frozen=True)

    point: str
    timestamp: str


class ActionItem(BaseModel):
    """Action item with its owner and the moment it was defined."""
    model_config = ConfigDict(frozen=True)

    action: str
    responsible: str
    timestamp: str


class MeetingSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    key_points: List[KeyPoint]
    action_items: List[ActionItem]


class FullAnalysis(BaseModel):
    """Summary plus full transcript for one recording."""
    model_config = ConfigDict(frozen=True)

    summary: MeetingSummary
    transcript: List[TranscriptEntry]


class HistoryItem(BaseModel):
    """A completed analysis kept in the local history."""
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    date: str  # ISO-8601
    analysis: FullAnalysis
    source: Literal["live", "upload"]


class MediaInput(BaseModel):
    """Media handed to the analysis call: inline base64 bytes or a remote file URI."""
    mime_type: str
    data: Optional[str] = None
    uri: Optional[str] = None


class RemoteFile(BaseModel):
    """File handle returned by the remote file store."""
    name: str
    uri: Optional[str] = None
    mime_type: Optional[str] = None
    display_name: Optional[str] = None
    state: str = "STATE_UNSPECIFIED"  # PROCESSING, ACTIVE, FAILED
    size_bytes: Optional[int] = None

    @classmethod
    def from_api(cls, data: dict) -> "RemoteFile":
        """Build from the Files API JSON representation."""
        size = data.get("sizeBytes")
        return cls(
            name=data.get("name", ""),
            uri=data.get("uri"),
            mime_type=data.get("mimeType"),
            display_name=data.get("displayName"),
            state=data.get("state") or "STATE_UNSPECIFIED",
            size_bytes=int(size) if size is not None else None,
        )

    @property
    def is_active(self) -> bool:
        return self.state == "ACTIVE"

    @property
    def is_processing(self) -> bool:
        return self.state == "PROCESSING"


MIN_FONT_SIZE = 12
MAX_FONT_SIZE = 20
DEFAULT_FONT_SIZE = 16


class Preferences(BaseModel):
    """Display preferences shared by the whole session."""
    theme: Literal["light", "dark"] = "light"
    font_size: int = Field(default=DEFAULT_FONT_SIZE, ge=MIN_FONT_SIZE, le=MAX_FONT_SIZE)


class LiveStatus(BaseModel):
    """Snapshot of the live capture session."""
    is_listening: bool
    is_processing: bool
    elapsed_seconds: int
    elapsed_display: str
    transcript: str
    error: Optional[str] = None
