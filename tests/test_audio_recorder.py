"""Unit tests for MicrophoneRecorder and AudioBuffer."""

import io
import wave
from unittest.mock import Mock, patch

import numpy as np
import pytest
import sounddevice as sd

from magic_notes.audio_recorder import AudioBuffer, AudioRecorderError, MicrophoneRecorder
from magic_notes.config import LiveConfig


class TestAudioBuffer:
    """Test cases for AudioBuffer class."""

    def test_append_when_accepting(self):
        buffer = AudioBuffer()
        buffer.accepting = True

        buffer.append(np.array([0.1, 0.2, 0.3], dtype=np.float32))
        buffer.append(np.array([0.4, 0.5], dtype=np.float32))

        assert len(buffer.chunks) == 2
        assert buffer.frame_count == 5

    def test_append_when_not_accepting(self):
        buffer = AudioBuffer()

        buffer.append(np.array([0.1, 0.2, 0.3], dtype=np.float32))

        assert buffer.frame_count == 0

    def test_duration(self):
        buffer = AudioBuffer(sample_rate=16000)
        buffer.accepting = True

        buffer.append(np.zeros(8000, dtype=np.float32))

        assert buffer.duration == 0.5

    def test_to_wav_bytes_empty(self):
        assert AudioBuffer().to_wav_bytes() == b""

    def test_to_wav_bytes(self):
        buffer = AudioBuffer(sample_rate=16000, channels=1)
        buffer.accepting = True
        buffer.append(np.full(1600, 0.5, dtype=np.float32))

        data = buffer.to_wav_bytes()

        with wave.open(io.BytesIO(data), "rb") as wav_file:
            assert wav_file.getnchannels() == 1
            assert wav_file.getsampwidth() == 2
            assert wav_file.getframerate() == 16000
            assert wav_file.getnframes() == 1600

    def test_clear(self):
        buffer = AudioBuffer()
        buffer.accepting = True
        buffer.append(np.zeros(10, dtype=np.float32))

        buffer.clear()

        assert buffer.frame_count == 0
        assert not buffer.accepting


class TestMicrophoneRecorder:
    """Test cases for MicrophoneRecorder class."""

    @pytest.fixture
    def recorder(self):
        return MicrophoneRecorder(LiveConfig(sample_rate=16000, chunk_size=256))

    @patch("sounddevice.query_devices")
    def test_list_input_devices(self, mock_query, recorder):
        mock_query.return_value = [
            {"name": "Built-in Microphone", "max_input_channels": 1, "default_samplerate": 44100.0},
            {"name": "Speakers", "max_input_channels": 0, "default_samplerate": 44100.0},
        ]

        devices = recorder.list_input_devices()

        assert devices == [{
            "id": 0, "name": "Built-in Microphone", "channels": 1, "sample_rate": 44100.0,
        }]
        assert recorder.is_available() is True

    @patch("sounddevice.query_devices")
    def test_query_failure(self, mock_query, recorder):
        mock_query.side_effect = sd.PortAudioError("no backend")

        with pytest.raises(AudioRecorderError):
            recorder.list_input_devices()
        assert recorder.is_available() is False

    @patch("sounddevice.InputStream")
    def test_start_and_stop(self, mock_stream_cls, recorder):
        stream = Mock()
        stream.active = True
        mock_stream_cls.return_value = stream

        recorder.start()
        assert recorder.is_recording()

        recorder._on_audio(np.full((256, 1), 0.25, dtype=np.float32), 256, None, None)
        assert recorder.duration == 256 / 16000
        data = recorder.stop()

        stream.start.assert_called_once()
        stream.stop.assert_called_once()
        stream.close.assert_called_once()
        assert data.startswith(b"RIFF")
        assert not recorder.is_recording()
        assert recorder.buffer is None

    @patch("sounddevice.InputStream")
    def test_stop_without_audio_returns_empty(self, mock_stream_cls, recorder):
        mock_stream_cls.return_value = Mock(active=True)

        recorder.start()

        assert recorder.stop() == b""

    @patch("sounddevice.InputStream")
    def test_start_failure_releases(self, mock_stream_cls, recorder):
        mock_stream_cls.side_effect = sd.PortAudioError("Permission denied")

        with pytest.raises(AudioRecorderError):
            recorder.start()

        assert recorder.buffer is None
        assert not recorder.is_recording()

    @patch("sounddevice.InputStream")
    def test_start_twice(self, mock_stream_cls, recorder):
        mock_stream_cls.return_value = Mock(active=True)
        recorder.start()

        with pytest.raises(AudioRecorderError):
            recorder.start()

    def test_stop_without_start(self, recorder):
        with pytest.raises(AudioRecorderError):
            recorder.stop()

    @patch("sounddevice.InputStream")
    def test_stereo_is_mixed_to_mono(self, mock_stream_cls, recorder):
        mock_stream_cls.return_value = Mock(active=True)
        recorder.start()

        recorder._on_audio(np.array([[0.2, 0.4], [0.6, 0.8]], dtype=np.float32), 2, None, None)

        assert np.allclose(recorder.buffer.chunks[0], [0.3, 0.7])

    @patch("sounddevice.InputStream")
    def test_release_is_idempotent(self, mock_stream_cls, recorder):
        stream = Mock(active=True)
        mock_stream_cls.return_value = stream
        recorder.start()

        recorder.release()
        recorder.release()

        stream.close.assert_called_once()

    @patch("sounddevice.InputStream")
    def test_stereo_device_records_mono_wav(self, mock_stream_cls):
        mock_stream_cls.return_value = Mock(active=True)
        recorder = MicrophoneRecorder(LiveConfig(sample_rate=16000, chunk_size=256, channels=2))
        recorder.start()

        recorder._on_audio(np.full((256, 2), 0.25, dtype=np.float32), 256, None, None)
        data = recorder.stop()

        assert mock_stream_cls.call_args[1]["channels"] == 2
        with wave.open(io.BytesIO(data), "rb") as wav_file:
            assert wav_file.getnchannels() == 1
            assert wav_file.getnframes() == 256
