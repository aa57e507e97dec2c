import os
import uuid
import logging
from typing import Dict, Any, Optional
from datetime import datetime, timedelta

from models import ProgressSnapshot
from tutorial_storage import read_json, write_json

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Short-lived learner progress snapshots keyed by a generated session key"""

    def __init__(self, storage_dir: str = "data", ttl_seconds: int = 3600):
        self.storage_dir = os.path.join(storage_dir, "progress")
        self.ttl = timedelta(seconds=ttl_seconds)
        self._ensure_storage_dir()

    def _ensure_storage_dir(self):
        """Ensure the storage directory exists"""
        if not os.path.exists(self.storage_dir):
            os.makedirs(self.storage_dir)

    def _get_progress_file(self, session_key: str) -> str:
        """Get the progress file path for a session key"""
        return os.path.join(self.storage_dir, f"{session_key}.json")

    def save_progress(self, snapshot: ProgressSnapshot) -> str:
        """Save a progress snapshot and return its session key"""
        try:
            session_key = f"progress_{uuid.uuid4()}"
            data = snapshot.model_dump(mode="json")
            data['expires_at'] = (datetime.now() + self.ttl).isoformat()
            write_json(self._get_progress_file(session_key), data)

            logger.info(f"Progress saved for tutorial {snapshot.tutorial_id}: {session_key}")
            return session_key

        except Exception as e:
            logger.error(f"Error saving progress: {str(e)}")
            raise

    def load_progress(self, session_key: str) -> Optional[Dict[str, Any]]:
        """Load a snapshot; None if unknown or expired"""
        # Keys are generated by save_progress; anything else can't name a file here
        if os.path.basename(session_key) != session_key:
            return None
        try:
            file_path = self._get_progress_file(session_key)
            data = read_json(file_path)
            if data is None:
                return None

            expires_at = datetime.fromisoformat(data.pop('expires_at'))
            if datetime.now() >= expires_at:
                os.remove(file_path)
                logger.info(f"Progress expired: {session_key}")
                return None

            logger.info(f"Progress loaded: {session_key}")
            return data

        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Error loading progress: {str(e)}")
            return None
