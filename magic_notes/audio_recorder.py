"""Microphone recording for live capture."""

import io
import logging
import threading
import wave
from typing import Dict, List, Optional

import numpy as np
import sounddevice as sd

from .capture import AudioSource
from .config import LiveConfig

logger = logging.getLogger(__name__)


class AudioRecorderError(Exception):
    """Raised when the microphone cannot be queried, opened or stopped."""
    pass


class AudioBuffer:
    """Mono float32 frames collected from the input stream callback."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1):
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunks: List[np.ndarray] = []
        self.frame_count = 0
        self.accepting = False
        self._lock = threading.Lock()

    def append(self, chunk: np.ndarray) -> None:
        """Keep a copy of the chunk while the buffer is accepting audio."""
        if not self.accepting:
            return
        with self._lock:
            self.chunks.append(chunk.copy())
            self.frame_count += len(chunk)

    @property
    def duration(self) -> float:
        """Buffered audio length in seconds."""
        return self.frame_count / self.sample_rate if self.frame_count else 0.0

    def to_wav_bytes(self) -> bytes:
        """Encode the buffered audio as 16-bit PCM WAV; empty if nothing was captured."""
        with self._lock:
            if not self.chunks:
                return b""
            samples = np.concatenate(self.chunks)

        pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype(np.int16)
        out = io.BytesIO()
        with wave.open(out, "wb") as wav:
            wav.setnchannels(self.channels)
            wav.setsampwidth(2)
            wav.setframerate(self.sample_rate)
            wav.writeframes(pcm.tobytes())
        return out.getvalue()

    def clear(self) -> None:
        with self._lock:
            self.chunks.clear()
            self.frame_count = 0
        self.accepting = False


class MicrophoneRecorder(AudioSource):
    """Records the default (or configured) microphone into memory."""

    mime_type = "audio/wav"

    def __init__(self, config: Optional[LiveConfig] = None):
        self.config = config or LiveConfig()
        self.buffer: Optional[AudioBuffer] = None
        self._stream: Optional[sd.InputStream] = None

    def list_input_devices(self) -> List[Dict]:
        """Describe every device that can record."""
        try:
            all_devices = sd.query_devices()
        except Exception as e:
            raise AudioRecorderError(f"Could not list audio devices: {e}")

        return [
            {
                "id": index,
                "name": info["name"],
                "channels": info["max_input_channels"],
                "sample_rate": info["default_samplerate"],
            }
            for index, info in enumerate(all_devices)
            if info["max_input_channels"] > 0
        ]

    def is_available(self) -> bool:
        try:
            return bool(self.list_input_devices())
        except AudioRecorderError:
            return False

    def _on_audio(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            logger.debug(f"Input stream status: {status}")
        if self.buffer is None:
            return
        # Mix down to mono
        mono = indata[:, 0] if indata.shape[1] == 1 else indata.mean(axis=1)
        self.buffer.append(mono)

    def start(self) -> None:
        """Open the microphone and start collecting audio."""
        if self.is_recording():
            raise AudioRecorderError("Microphone is already recording")

        # Callback mixes every block down to mono before buffering
        self.buffer = AudioBuffer(self.config.sample_rate, channels=1)
        try:
            self._stream = sd.InputStream(
                device=self.config.device_id,
                channels=self.config.channels,
                samplerate=self.config.sample_rate,
                blocksize=self.config.chunk_size,
                dtype=np.float32,
                callback=self._on_audio,
            )
            self.buffer.accepting = True
            self._stream.start()
        except Exception as e:
            self.release()
            raise AudioRecorderError(f"Could not open microphone: {e}")

        logger.info(f"Microphone recording started (device: {self.config.device_id or 'default'})")

    def stop(self) -> bytes:
        """
        Stop recording and return the WAV bytes.

        The stream is stopped and closed before encoding, so the last chunk
        delivered by the device is included.
        """
        if self.buffer is None:
            raise AudioRecorderError("Microphone is not recording")

        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None

        buffer, self.buffer = self.buffer, None
        buffer.accepting = False
        data = buffer.to_wav_bytes()
        logger.info(f"Microphone recording stopped after {buffer.duration:.2f}s")
        buffer.clear()
        return data

    def release(self) -> None:
        """Close the stream if still open."""
        if self._stream is not None:
            try:
                self._stream.close()
            except Exception as e:
                logger.warning(f"Error closing input stream: {e}")
            self._stream = None

        if self.buffer is not None:
            self.buffer.clear()
            self.buffer = None

    def is_recording(self) -> bool:
        if self.buffer is None or not self.buffer.accepting:
            return False
        return self._stream is not None and self._stream.active

    @property
    def duration(self) -> float:
        return self.buffer.duration if self.buffer else 0.0
