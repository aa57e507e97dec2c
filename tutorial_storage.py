import os
import json
import logging
import threading
from typing import Dict, Any, List, Optional

from pydantic import ValidationError

from models import Block, Tutorial

logger = logging.getLogger(__name__)


def write_json(file_path: str, data: Dict[str, Any]) -> None:
    """Write JSON through a temp file so readers never see a half-written record"""
    tmp_path = f"{file_path}.tmp"
    with open(tmp_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp_path, file_path)


def read_json(file_path: str) -> Optional[Dict[str, Any]]:
    if not os.path.exists(file_path):
        return None
    with open(file_path, 'r', encoding='utf-8') as f:
        return json.load(f)


class TutorialStorage:
    """JSON-file store for tutorials and their blocks.

    One file per tutorial under ``tutorials/`` and one per block under
    ``blocks/``. A tutorial's block_ids are not persisted; they are rebuilt
    from its blocks' sequence values on every load.
    """

    def __init__(self, storage_dir: str = "data"):
        self.storage_dir = storage_dir
        self.tutorials_dir = os.path.join(storage_dir, "tutorials")
        self.blocks_dir = os.path.join(storage_dir, "blocks")
        self._lock = threading.RLock()
        self._ensure_storage_dir()

    def _ensure_storage_dir(self):
        """Ensure the storage directories exist"""
        for path in (self.tutorials_dir, self.blocks_dir):
            if not os.path.exists(path):
                os.makedirs(path)

    def _tutorial_file(self, tutorial_id: str) -> str:
        return os.path.join(self.tutorials_dir, f"{tutorial_id}.json")

    def _block_file(self, block_id: str) -> str:
        return os.path.join(self.blocks_dir, f"{block_id}.json")

    # Tutorials

    def save_tutorial(self, tutorial: Tutorial) -> str:
        """Save a tutorial record and return its ID"""
        try:
            data = tutorial.model_dump(mode="json", exclude={"block_ids"})
            with self._lock:
                write_json(self._tutorial_file(tutorial.id), data)
            logger.info(f"Tutorial saved successfully: {tutorial.id}")
            return tutorial.id
        except Exception as e:
            logger.error(f"Error saving tutorial: {str(e)}")
            raise

    def load_tutorial(self, tutorial_id: str) -> Optional[Tutorial]:
        """Load a tutorial by ID, with its block ids in sequence order"""
        try:
            data = read_json(self._tutorial_file(tutorial_id))
            if data is None:
                return None
            tutorial = Tutorial(**data)
            tutorial.block_ids = [block.id for block in self.list_blocks(tutorial_id)]
            logger.info(f"Tutorial loaded successfully: {tutorial_id}")
            return tutorial
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Error loading tutorial {tutorial_id}: {str(e)}")
            return None

    def list_tutorials(self) -> List[Tutorial]:
        """List all stored tutorials, newest first"""
        tutorials = []
        for file_name in os.listdir(self.tutorials_dir):
            if file_name.endswith('.json'):
                tutorial = self.load_tutorial(file_name[:-5])  # Remove .json extension
                if tutorial:
                    tutorials.append(tutorial)
        tutorials.sort(key=lambda t: t.created_at, reverse=True)
        return tutorials

    def delete_tutorial(self, tutorial_id: str) -> List[str]:
        """Delete a tutorial and all of its blocks; returns the deleted block ids"""
        with self._lock:
            block_ids = [block.id for block in self.list_blocks(tutorial_id)]
            for block_id in block_ids:
                self.delete_block(block_id)
            file_path = self._tutorial_file(tutorial_id)
            if os.path.exists(file_path):
                os.remove(file_path)
        logger.info(f"Tutorial deleted: {tutorial_id} ({len(block_ids)} blocks)")
        return block_ids

    # Blocks

    def save_block(self, block: Block) -> str:
        """Save a block record and return its ID"""
        try:
            with self._lock:
                write_json(self._block_file(block.id), block.model_dump(mode="json"))
            logger.info(f"Block saved successfully: {block.id}")
            return block.id
        except Exception as e:
            logger.error(f"Error saving block: {str(e)}")
            raise

    def load_block_data(self, block_id: str) -> Optional[Dict[str, Any]]:
        """Load the raw stored record of a block"""
        try:
            return read_json(self._block_file(block_id))
        except (OSError, ValueError) as e:
            logger.error(f"Error reading block {block_id}: {str(e)}")
            return None

    def load_block(self, block_id: str) -> Optional[Block]:
        data = self.load_block_data(block_id)
        if data is None:
            return None
        try:
            return Block(**data)
        except ValidationError as e:
            logger.error(f"Stored block {block_id} is invalid: {str(e)}")
            return None

    def list_blocks(self, tutorial_id: str) -> List[Block]:
        """Blocks of a tutorial sorted ascending by sequence"""
        blocks = []
        for file_name in os.listdir(self.blocks_dir):
            if not file_name.endswith('.json'):
                continue
            block = self.load_block(file_name[:-5])
            if block and block.tutorial_id == tutorial_id:
                blocks.append(block)
        blocks.sort(key=lambda b: (b.sequence, b.id))
        return blocks

    def delete_block(self, block_id: str) -> bool:
        file_path = self._block_file(block_id)
        with self._lock:
            if not os.path.exists(file_path):
                return False
            os.remove(file_path)
        logger.info(f"Block deleted: {block_id}")
        return True

    def reorder_blocks(self, tutorial_id: str, ordered_ids: List[str]) -> List[Block]:
        """Assign sequence = position to every listed block of the tutorial.

        All sequence values are written while holding the store lock, so no
        reader sees a partially reordered tutorial. Ids that are unknown or
        belong to another tutorial are skipped; blocks that are not listed
        keep their sequence.
        """
        updated = []
        with self._lock:
            for sequence, block_id in enumerate(ordered_ids):
                block = self.load_block(block_id)
                if block is None or block.tutorial_id != tutorial_id:
                    logger.warning(f"Skipping block {block_id} while reordering tutorial {tutorial_id}")
                    continue
                block.sequence = sequence
                updated.append(block)
            for block in updated:
                write_json(self._block_file(block.id), block.model_dump(mode="json"))
        logger.info(f"Reordered {len(updated)} blocks in tutorial {tutorial_id}")
        return updated
