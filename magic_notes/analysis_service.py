"""
Entry points that turn user input into stored analyses.

Uploads and text transcripts go through the remote analysis client and, on
success, land in the history. Failures leave the history untouched.
"""

import base64
import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .config import UploadConfig
from .errors import AnalysisInProgress, InvalidMediaInput
from .file_manager import FileManager
from .gemini_client import GeminiClient
from .history import HistoryStore
from .models import FullAnalysis, HistoryItem, MediaInput

logger = logging.getLogger(__name__)


class AnalysisGuard:
    """Allows at most one analysis in flight."""

    def __init__(self):
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise AnalysisInProgress("Another analysis is already running")
        try:
            yield
        finally:
            self._lock.release()


class AnalysisService:
    """Analyzes uploaded media and raw transcripts."""

    def __init__(
        self,
        client: GeminiClient,
        history: HistoryStore,
        file_manager: FileManager,
        upload_config: Optional[UploadConfig] = None,
        guard: Optional[AnalysisGuard] = None,
    ):
        self.client = client
        self.history = history
        self.file_manager = file_manager
        self.upload_config = upload_config or UploadConfig()
        self.guard = guard or AnalysisGuard()

    def is_processing(self) -> bool:
        return self.guard.busy

    def needs_upload(self, path: str) -> bool:
        """Files above the inline limit are sent through the Files API."""
        return self.file_manager.get_file_size_mb(path) > self.upload_config.inline_max_mb

    def analyze_upload(self, path: str, filename: str, mime_type: str, deep: bool = False) -> HistoryItem:
        """
        Analyze an audio or video file and store the result in history.

        Args:
            path: Local path of the file
            filename: Original file name, used as the history title
            mime_type: MIME type reported for the file
            deep: Use the thorough model profile

        Returns:
            The stored HistoryItem

        Raises:
            InvalidMediaInput: Unsupported type or empty file
            AnalysisInProgress: Another analysis is running
            AnalysisError: Any failure from the remote client
        """
        if not self.file_manager.is_supported_media(mime_type):
            raise InvalidMediaInput(f"Unsupported media type: {mime_type}")
        if not os.path.exists(path) or os.path.getsize(path) == 0:
            raise InvalidMediaInput(
                f"Empty or missing file: {path}",
                user_message="Não foi possível ler o arquivo de áudio.",
            )

        with self.guard.hold():
            logger.info(f"Analyzing upload {filename} ({mime_type}, deep={deep})")
            analysis = self._analyze_file(path, filename, mime_type, deep)
            return self.history.new_item(analysis, filename, "upload")

    def _analyze_file(self, path: str, filename: str, mime_type: str, deep: bool) -> FullAnalysis:
        if not self.needs_upload(path):
            with open(path, "rb") as f:
                data = base64.b64encode(f.read()).decode("ascii")
            return self.client.analyze(MediaInput(mime_type=mime_type, data=data), deep)

        remote_file = self.client.upload_file(path, mime_type, filename)
        try:
            return self.client.analyze(MediaInput(mime_type=mime_type, uri=remote_file.uri), deep)
        finally:
            self.client.delete_file(remote_file.name)

    def analyze_audio_bytes(self, audio: bytes, mime_type: str, title: str, deep: bool = False) -> HistoryItem:
        """Analyze an in-memory live recording and store it with source 'live'."""
        if not audio:
            raise InvalidMediaInput(
                "Empty recording",
                user_message="A gravação de áudio está vazia. Nenhuma análise foi realizada.",
            )

        with self.guard.hold():
            data = base64.b64encode(audio).decode("ascii")
            analysis = self.client.analyze(MediaInput(mime_type=mime_type, data=data), deep)
            return self.history.new_item(analysis, title, "live")

    def analyze_text(self, transcript: str, title: Optional[str] = None, deep: bool = False) -> HistoryItem:
        """Analyze a raw transcript and store it in history."""
        with self.guard.hold():
            analysis = self.client.analyze_transcript(transcript, deep)
            return self.history.new_item(analysis, title or "Transcrição", "upload")
