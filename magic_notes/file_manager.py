import logging
import os
import shutil
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

SUPPORTED_MEDIA_PREFIXES = ("audio/", "video/")
BYTES_PER_MB = 1024 * 1024
BYTES_PER_GB = 1024 ** 3


class FileManager:
    """Local media on disk: temporary uploads and the recording kept for playback."""

    def __init__(self, base_dir: str = "magic_notes_data", auto_cleanup_days: int = 7,
                 min_free_space_gb: float = 1.0):
        """
        Args:
            base_dir: Directory holding the recordings/ and temp/ folders
            auto_cleanup_days: Age after which leftover media is removed
            min_free_space_gb: Free space below which the health check warns
        """
        self.base_dir = Path(base_dir)
        self.auto_cleanup_days = auto_cleanup_days
        self.min_free_space_gb = min_free_space_gb

        self.recordings_dir = self.base_dir / "recordings"
        self.temp_dir = self.base_dir / "temp"
        for directory in (self.base_dir, self.recordings_dir, self.temp_dir):
            directory.mkdir(parents=True, exist_ok=True)

        self._current_recording: Optional[Path] = None

    @staticmethod
    def is_supported_media(mime_type: Optional[str]) -> bool:
        """Only audio and video files can be analyzed."""
        return bool(mime_type) and mime_type.startswith(SUPPORTED_MEDIA_PREFIXES)

    def get_file_size_mb(self, filepath: str) -> float:
        """Size of a file in MB; 0 when it is missing or unreadable."""
        try:
            return os.path.getsize(filepath) / BYTES_PER_MB
        except OSError:
            return 0.0

    def check_disk_space(self) -> Tuple[bool, float, str]:
        """
        Returns:
            Tuple of (enough space, free GB, warning or empty string)
        """
        try:
            free_gb = shutil.disk_usage(self.base_dir).free / BYTES_PER_GB
        except OSError as e:
            logger.error(f"Could not read disk usage for {self.base_dir}: {e}")
            return False, 0.0, f"Unable to check disk space: {e}"

        if free_gb >= self.min_free_space_gb:
            return True, free_gb, ""
        return False, free_gb, (
            f"Low disk space: {free_gb:.1f}GB free, {self.min_free_space_gb}GB needed."
        )

    def save_upload(self, source: BinaryIO, filename: str) -> str:
        """Copy an uploaded stream into the temp directory and return its path."""
        suffix = Path(filename).suffix
        target = self.temp_dir / f"upload_{uuid.uuid4().hex}{suffix}"
        with open(target, "wb") as out:
            shutil.copyfileobj(source, out)
        return str(target)

    def remove_temp_file(self, filepath: str) -> None:
        try:
            Path(filepath).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to remove temp file {filepath}: {e}")

    @property
    def current_recording(self) -> Optional[Path]:
        return self._current_recording

    def replace_recording(self, data: bytes, suffix: str = ".wav") -> str:
        """
        Store the latest live recording for playback.

        The previous recording is released first; only one is kept at a time.
        """
        self.release_recording()
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = self.recordings_dir / f"live_{stamp}_{uuid.uuid4().hex[:8]}{suffix}"
        path.write_bytes(data)
        self._current_recording = path
        logger.info(f"Stored recording for playback: {path}")
        return str(path)

    def release_recording(self) -> bool:
        """
        Delete the stored playback recording.

        Returns:
            True if a recording was released, False if there was none
        """
        path = self._current_recording
        if path is None:
            return False
        self._current_recording = None
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to remove recording {path}: {e}")
        return True

    def auto_cleanup_old_files(self) -> Dict[str, int]:
        """
        Remove recordings and temp files left over from earlier runs.

        Returns:
            Number of files removed per folder
        """
        max_age = self.auto_cleanup_days * 24 * 3600
        now = time.time()
        removed = {"recordings_removed": 0, "temp_files_removed": 0}

        for folder, counter in ((self.recordings_dir, "recordings_removed"),
                                (self.temp_dir, "temp_files_removed")):
            for path in folder.iterdir():
                if not path.is_file() or path == self._current_recording:
                    continue
                try:
                    if now - path.stat().st_mtime > max_age:
                        path.unlink()
                        removed[counter] += 1
                except OSError as e:
                    logger.error(f"Cleanup failed for {path}: {e}")

        if any(removed.values()):
            logger.info(f"Removed stale media files: {removed}")
        return removed
