"""Live speech-to-text using faster-whisper on short microphone windows."""

import logging
import threading
from typing import Optional

import numpy as np
import sounddevice as sd
from faster_whisper import WhisperModel

from .capture import SpeechRecognizer
from .config import LiveConfig

logger = logging.getLogger(__name__)


class WhisperSpeechRecognizer(SpeechRecognizer):
    """
    Listens on the microphone and transcribes fixed-length windows.

    Each window yields one final result. A silent window ends the recognition
    session, as a browser recognizer does after a pause; whoever owns the
    recognizer decides whether to start it again.
    """

    def __init__(self, config: Optional[LiveConfig] = None, model: Optional[WhisperModel] = None):
        super().__init__()
        self.config = config or LiveConfig()
        self._model = model
        self._model_lock = threading.Lock()
        self._state_lock = threading.Lock()
        # One stop event per recognition thread; a new start never clears an old one
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def _get_model(self) -> WhisperModel:
        with self._model_lock:
            if self._model is None:
                logger.info(f"Loading Whisper model: {self.config.whisper_model}")
                self._model = WhisperModel(self.config.whisper_model, device=self.config.whisper_device)
            return self._model

    def start(self) -> None:
        with self._state_lock:
            if self._running:
                raise RuntimeError("Recognition already started")
            if threading.current_thread() is self._thread and self._stop_event.is_set():
                # Restart requested from a session that was told to stop
                logger.debug("Stop already requested, not restarting recognition")
                return
            self._running = True
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name="whisper-recognizer", daemon=True
            )
            self._thread.start()

    def stop(self) -> None:
        with self._state_lock:
            self._stop_event.set()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.config.window_seconds + 30)

    def _is_silent(self, audio: np.ndarray) -> bool:
        if audio.size == 0:
            return True
        rms = float(np.sqrt(np.mean(np.square(audio))))
        return rms < self.config.silence_rms

    def _transcribe(self, model: WhisperModel, audio: np.ndarray) -> str:
        segments, _info = model.transcribe(
            audio,
            language=self.config.language,
            beam_size=5,
            condition_on_previous_text=False,
            vad_filter=True,
        )
        return " ".join(segment.text.strip() for segment in segments).strip()

    def _run(self, stop_event: threading.Event) -> None:
        window_frames = int(self.config.window_seconds * self.config.sample_rate)
        buffer = []
        buffered = 0
        try:
            model = self._get_model()
            with sd.InputStream(
                device=self.config.device_id,
                channels=1,
                samplerate=self.config.sample_rate,
                blocksize=self.config.chunk_size,
                dtype=np.float32,
            ) as stream:
                while not stop_event.is_set():
                    block, _overflowed = stream.read(self.config.chunk_size)
                    buffer.append(block[:, 0].copy())
                    buffered += len(block)
                    if buffered < window_frames:
                        continue

                    window = np.concatenate(buffer)
                    buffer, buffered = [], 0
                    if self._is_silent(window):
                        logger.debug("Silent window, ending recognition session")
                        return

                    text = self._transcribe(model, window)
                    if text:
                        self._emit_result(text, True)

            # Flush what was heard between the last window and stop()
            if buffer:
                window = np.concatenate(buffer)
                if not self._is_silent(window):
                    text = self._transcribe(model, window)
                    if text:
                        self._emit_result(text, True)
        except sd.PortAudioError as e:
            logger.error(f"Microphone unavailable for recognition: {e}")
            self._emit_error("audio-capture")
        except Exception as e:
            logger.error(f"Speech recognition failed: {e}")
            self._emit_error("aborted")
        finally:
            with self._state_lock:
                self._running = False
            self._emit_end()
