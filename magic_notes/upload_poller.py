"""
Activation polling for files handed to the remote file store.

Uploaded media (video in particular) is processed server-side before it can be
referenced in an analysis request. The poller waits for the ACTIVE state with
a hard ceiling on the number of status checks.
"""

import logging
import time
from typing import Callable

from .errors import ProcessingFailed, ProcessingTimeout
from .models import RemoteFile

logger = logging.getLogger(__name__)


class UploadStatusPoller:
    """Waits for an uploaded file to become ACTIVE."""

    def __init__(
        self,
        fetch_status: Callable[[str], RemoteFile],
        poll_interval: float = 2.0,
        max_attempts: int = 120,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            fetch_status: Returns the current handle for a remote file name
            poll_interval: Seconds to wait before each status check
            max_attempts: Maximum number of status checks
            sleep: Sleep function, replaceable in tests
        """
        self.fetch_status = fetch_status
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.sleep = sleep

    def wait_until_active(self, remote_file: RemoteFile) -> RemoteFile:
        """
        Poll until the file is ACTIVE.

        A failed status check counts as an attempt but is otherwise ignored.

        Returns:
            The ACTIVE file handle

        Raises:
            ProcessingTimeout: Still PROCESSING after max_attempts checks
            ProcessingFailed: The file reached any other state
        """
        current = remote_file
        logger.info(f"Waiting for file {remote_file.name} (initial state: {remote_file.state})")

        if current.is_active:
            return current

        attempts = 0
        while current.is_processing and attempts < self.max_attempts:
            self.sleep(self.poll_interval)
            try:
                current = self.fetch_status(remote_file.name)
                logger.debug(f"File {remote_file.name} state: {current.state}")
            except Exception as e:
                logger.warning(f"Temporary error checking state of {remote_file.name}, retrying: {e}")
            attempts += 1

        if current.is_active:
            logger.info(f"File {current.name} is active after {attempts} checks")
            return current

        if current.is_processing:
            raise ProcessingTimeout(current.state)
        raise ProcessingFailed(current.state)
