import os
import logging
import threading
from typing import Dict

from models import AttemptCounter
from tutorial_storage import read_json, write_json

logger = logging.getLogger(__name__)


class AttemptTracker:
    """Per-block attempt and correct-answer counters.

    Every increment is a read-increment-write done while holding that
    block's lock, so concurrent submissions for the same block never lose
    updates. Counters only ever go up.
    """

    def __init__(self, storage_dir: str = "data"):
        self.storage_dir = os.path.join(storage_dir, "attempts")
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._ensure_storage_dir()

    def _ensure_storage_dir(self):
        """Ensure the storage directory exists"""
        if not os.path.exists(self.storage_dir):
            os.makedirs(self.storage_dir)

    def _get_attempts_file(self, block_id: str) -> str:
        return os.path.join(self.storage_dir, f"{block_id}_attempts.json")

    def _lock_for(self, block_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(block_id)
            if lock is None:
                lock = self._locks[block_id] = threading.Lock()
            return lock

    def _read(self, block_id: str) -> AttemptCounter:
        data = read_json(self._get_attempts_file(block_id))
        if data is None:
            return AttemptCounter(block_id=block_id)
        return AttemptCounter(
            block_id=block_id,
            total_attempts=data.get('total_attempts', 0),
            correct_attempts=data.get('correct_attempts', 0),
        )

    def record_attempt(self, block_id: str, is_correct: bool) -> AttemptCounter:
        """Count one graded attempt for a block"""
        try:
            with self._lock_for(block_id):
                counter = self._read(block_id)
                counter.total_attempts += 1
                if is_correct:
                    counter.correct_attempts += 1
                write_json(
                    self._get_attempts_file(block_id),
                    counter.model_dump(include={'total_attempts', 'correct_attempts'}),
                )
            logger.debug(f"Attempt recorded for block {block_id}: {counter.correct_attempts}/{counter.total_attempts}")
            return counter
        except Exception as e:
            logger.error(f"Error recording attempt for block {block_id}: {str(e)}")
            raise

    def get_stats(self, block_id: str) -> AttemptCounter:
        """Counters for a block; zeros if it has never been attempted"""
        with self._lock_for(block_id):
            return self._read(block_id)

    def has_stats(self, block_id: str) -> bool:
        return os.path.exists(self._get_attempts_file(block_id))

    def delete_stats(self, block_id: str) -> None:
        """Drop a deleted block's counters"""
        with self._lock_for(block_id):
            file_path = self._get_attempts_file(block_id)
            if os.path.exists(file_path):
                os.remove(file_path)
                logger.info(f"Attempt counters removed for block: {block_id}")
        with self._locks_guard:
            self._locks.pop(block_id, None)
