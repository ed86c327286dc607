"""
Live capture session: audio recording, live speech-to-text and a timer.

Recording and recognition run independently and are only correlated by the
user's start and stop. Recognition sessions that end on their own (silence)
are restarted while the session is still supposed to be listening; that
decision always reads the shared `listening` event, never a value captured
when the callback was registered, and is made under the same lock that
clears the event on stop.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from .analysis_service import AnalysisService
from .errors import (
    AnalysisError, AnalysisInProgress, InvalidMediaInput, MicrophonePermissionDenied, NotFound,
    recognition_error,
)
from .export import format_datetime
from .file_manager import FileManager
from .models import HistoryItem, LiveStatus

logger = logging.getLogger(__name__)


class AudioSource(ABC):
    """Raw audio capture device."""

    mime_type = "audio/wav"

    @abstractmethod
    def start(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> bytes:
        """Stop capturing and return the complete encoded recording."""
        raise NotImplementedError

    @abstractmethod
    def release(self) -> None:
        """Close the device. Safe to call more than once."""
        raise NotImplementedError

    @abstractmethod
    def is_recording(self) -> bool:
        raise NotImplementedError

    def is_available(self) -> bool:
        """Whether an input device is present."""
        return True


class SpeechRecognizer(ABC):
    """
    Streaming speech-to-text.

    Implementations report through the callbacks below. `on_end` fires
    whenever a recognition session ends, whether stopped or not.
    """

    def __init__(self):
        self.on_result: Optional[Callable[[str, bool], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None
        self.on_end: Optional[Callable[[], None]] = None

    @abstractmethod
    def start(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError

    def _emit_result(self, text: str, is_final: bool) -> None:
        if self.on_result:
            self.on_result(text, is_final)

    def _emit_error(self, code: str) -> None:
        if self.on_error:
            self.on_error(code)

    def _emit_end(self) -> None:
        if self.on_end:
            self.on_end()


def format_elapsed(total_seconds: int) -> str:
    minutes, seconds = divmod(max(total_seconds, 0), 60)
    return f"{minutes:02d}:{seconds:02d}"


class CaptureSession:
    """Coordinates one live recording from start to stored analysis."""

    def __init__(
        self,
        recorder: AudioSource,
        recognizer: SpeechRecognizer,
        analysis_service: AnalysisService,
        file_manager: FileManager,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.recorder = recorder
        self.recognizer = recognizer
        self.analysis_service = analysis_service
        self.file_manager = file_manager
        self.clock = clock

        self.listening = threading.Event()
        # Guards the listening check-and-restart against clearing on stop
        self._control_lock = threading.Lock()
        self._text_lock = threading.Lock()
        self._last_title: Optional[str] = None
        self._final_parts: List[str] = []
        self._interim = ""
        self._error: Optional[AnalysisError] = None
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._active = False

        self.recognizer.on_result = self._handle_result
        self.recognizer.on_error = self._handle_error
        self.recognizer.on_end = self._handle_end

    # Recognizer callbacks

    def _handle_result(self, text: str, is_final: bool) -> None:
        with self._text_lock:
            if is_final:
                self._final_parts.append(text.strip())
                self._interim = ""
            else:
                self._interim = text

    def _handle_error(self, code: str) -> None:
        error = recognition_error(code)
        logger.error(f"Speech recognition error: {code}")
        self._error = error
        self.listening.clear()

    def _handle_end(self) -> None:
        with self._control_lock:
            if not self.listening.is_set():
                return
            try:
                logger.debug("Recognition ended while listening, restarting")
                self.recognizer.start()
            except Exception as e:
                logger.error(f"Error restarting recognition: {e}")

    # State

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def transcript(self) -> str:
        with self._text_lock:
            parts = [p for p in self._final_parts if p]
            if self._interim:
                parts.append(self._interim)
            return " ".join(parts)

    @property
    def error(self) -> Optional[AnalysisError]:
        return self._error

    @property
    def elapsed_seconds(self) -> int:
        if self._started_at is None:
            return 0
        end = self._stopped_at if self._stopped_at is not None else self.clock()
        return int(end - self._started_at)

    def status(self) -> LiveStatus:
        return LiveStatus(
            is_listening=self.listening.is_set(),
            is_processing=self.analysis_service.is_processing(),
            elapsed_seconds=self.elapsed_seconds,
            elapsed_display=format_elapsed(self.elapsed_seconds),
            transcript=self.transcript,
            error=self._error.user_message if self._error else None,
        )

    # Control

    def start(self) -> None:
        """
        Start recording and live recognition.

        Raises:
            AnalysisInProgress: A recording or analysis is already running
            MicrophonePermissionDenied: The microphone could not be opened
        """
        if self._active:
            raise AnalysisInProgress(
                "Recording already in progress",
                user_message="Uma gravação já está em andamento.",
            )
        if self.analysis_service.is_processing():
            raise AnalysisInProgress("Analysis in progress")

        with self._text_lock:
            self._final_parts = []
            self._interim = ""
        self._error = None
        self._stopped_at = None

        try:
            self.recorder.start()
        except Exception as e:
            self.recorder.release()
            raise MicrophonePermissionDenied(
                f"Could not open microphone: {e}",
                user_message="Não foi possível acessar o microfone. Verifique as permissões do sistema.",
            )

        self._active = True
        self._started_at = self.clock()
        with self._control_lock:
            self.listening.set()
        try:
            self.recognizer.start()
        except Exception as e:
            logger.error(f"Error starting recognition: {e}")
            self._error = AnalysisError(
                f"Could not start recognition: {e}",
                user_message="Não foi possível iniciar o reconhecimento de fala.",
            )
        logger.info("Live capture started")

    def _release_devices(self) -> bytes:
        """Stop recognition and recording; the microphone is always released."""
        # Not held across recognizer.stop(): it joins a thread that may be
        # waiting in _handle_end for this lock
        with self._control_lock:
            self.listening.clear()
        self._stopped_at = self.clock()
        self._active = False
        audio = b""
        try:
            try:
                self.recognizer.stop()
            except Exception as e:
                logger.error(f"Error stopping recognition: {e}")
            audio = self.recorder.stop()
        finally:
            self.recorder.release()
        return audio

    def stop(self, deep: bool = False) -> HistoryItem:
        """
        Stop capturing and analyze the recording.

        The recorder has flushed and closed its stream before the audio is
        handed to the analysis. The recording stays on disk, so a failed
        analysis can be retried with analyze_last_recording().

        Returns:
            The stored HistoryItem

        Raises:
            InvalidMediaInput: Nothing is being recorded, or the recording is empty
            AnalysisInProgress: Another analysis is running; the capture goes on
            AnalysisError: Any failure from the analysis
        """
        if not self._active:
            raise InvalidMediaInput(
                "No recording in progress",
                user_message="Nenhuma gravação em andamento.",
            )
        if self.analysis_service.is_processing():
            raise AnalysisInProgress("Analysis in progress")

        audio = self._release_devices()
        logger.info(f"Live capture stopped after {format_elapsed(self.elapsed_seconds)} ({len(audio)} bytes)")

        if not audio:
            raise InvalidMediaInput(
                "Empty recording",
                user_message="A gravação de áudio está vazia. Nenhuma análise foi realizada.",
            )

        self.file_manager.replace_recording(audio)
        self._last_title = f"Gravação de {format_datetime()}"
        return self.analysis_service.analyze_audio_bytes(
            audio,
            self.recorder.mime_type,
            self._last_title,
            deep,
        )

    def analyze_last_recording(self, deep: bool = False) -> HistoryItem:
        """
        Analyze the recording kept on disk again.

        Raises:
            NotFound: No recording is stored
            AnalysisError: Any failure from the analysis
        """
        path = self.file_manager.current_recording
        if path is None or not path.exists():
            raise NotFound(
                "No stored recording",
                user_message="Nenhuma gravação disponível para análise.",
            )
        logger.info(f"Analyzing stored recording {path}")
        return self.analysis_service.analyze_audio_bytes(
            path.read_bytes(),
            self.recorder.mime_type,
            self._last_title or f"Gravação de {format_datetime()}",
            deep,
        )

    def close(self) -> None:
        """Release devices and the stored recording without analyzing."""
        if self._active:
            self._release_devices()
        self.file_manager.release_recording()
