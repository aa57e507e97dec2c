import uuid
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse

from pydantic import TypeAdapter, ValidationError

from attempt_tracker import AttemptTracker
from errors import (
    BlockNotFound,
    InvalidImage,
    InvalidParent,
    InvalidQuestion,
    InvalidType,
    InvalidUrl,
    TutorialNotFound,
)
from models import (
    Block,
    BlockType,
    DividerPayload,
    EmbedPayload,
    ImagePayload,
    QuestionData,
    QuizPayload,
    TextPayload,
    Tutorial,
    TutorialMetadata,
)
from tutorial_storage import TutorialStorage

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('jpg', 'jpeg', 'png', 'gif', 'svg', 'webp')
PAYLOAD_FIELDS = {
    BlockType.TEXT: ('content',),
    BlockType.EMBED: ('url', 'embed_type', 'domain_lock'),
    BlockType.IMAGE: ('image_url', 'image_alt', 'image_caption'),
    BlockType.DIVIDER: ('style',),
}
QUESTION_FIELDS = (
    'question_type', 'question_text', 'options', 'correct_answer', 'correct_answers',
    'feedback_correct', 'feedback_incorrect', 'max_attempts', 'case_sensitive', 'show_answer',
)

_question_adapter = TypeAdapter(QuestionData)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url or '')
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def is_valid_image_url(url: str) -> bool:
    path = urlparse(url or '').path
    extension = path.rsplit('.', 1)[-1].lower() if '.' in path else ''
    return extension in IMAGE_EXTENSIONS


def parse_block_type(value: Any) -> BlockType:
    try:
        return BlockType(value)
    except ValueError:
        raise InvalidType(f"Invalid block type: {value!r}")


def build_question(fields: Dict[str, Any]):
    """Build typed question data from quiz fields (multiple choice by default)"""
    source = fields.get('question') or fields
    if hasattr(source, 'model_dump'):
        source = source.model_dump()
    data = {key: source[key] for key in QUESTION_FIELDS if key in source}
    data.setdefault('question_type', 'multiple_choice')
    try:
        return _question_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidQuestion(f"Invalid question data: {e}")


def build_payload(block_type: BlockType, fields: Dict[str, Any]):
    """Build the payload for a block type from the given fields only"""
    if block_type == BlockType.QUIZ:
        return QuizPayload(question=build_question(fields))

    data = {key: fields[key] for key in PAYLOAD_FIELDS[block_type] if key in fields}
    if block_type == BlockType.TEXT:
        return TextPayload(**data)
    if block_type == BlockType.EMBED:
        payload = EmbedPayload(**data)
        if not is_valid_url(payload.url):
            raise InvalidUrl(f"Invalid URL: {payload.url!r}")
        return payload
    if block_type == BlockType.IMAGE:
        payload = ImagePayload(**data)
        if not is_valid_image_url(payload.image_url):
            raise InvalidImage(f"Invalid image URL: {payload.image_url!r}")
        return payload
    return DividerPayload(**data)


class BlockManager:
    """Create, change, order and look up the blocks of a tutorial.

    All state lives in the storage collaborator; this class keeps none of
    its own.
    """

    def __init__(self, storage: TutorialStorage, attempts: Optional[AttemptTracker] = None):
        self.storage = storage
        self.attempts = attempts

    def create(self, tutorial_id: str, block_type: Any, fields: Optional[Dict[str, Any]] = None) -> Block:
        """Append a new block at the end of a tutorial"""
        fields = fields or {}
        if self.storage.load_tutorial(tutorial_id) is None:
            raise InvalidParent(f"Tutorial not found: {tutorial_id}")
        block_type = parse_block_type(block_type)

        block = Block(
            id=_new_id(),
            tutorial_id=tutorial_id,
            sequence=len(self.storage.list_blocks(tutorial_id)),
            type=block_type,
            title=fields.get('title') or 'Block',
            embed_url=fields.get('embed_url'),
            payload=build_payload(block_type, fields),
        )
        self.storage.save_block(block)
        logger.info(f"Created {block_type.value} block {block.id} in tutorial {tutorial_id}")
        return block

    def get(self, block_id: str) -> Optional[Block]:
        return self.storage.load_block(block_id)

    def exists(self, block_id: str) -> bool:
        return self.storage.load_block(block_id) is not None

    def get_type(self, block_id: str) -> Optional[BlockType]:
        block = self.storage.load_block(block_id)
        return block.type if block else None

    def update(self, block_id: str, fields: Dict[str, Any]) -> Block:
        """Change a block's title, resource URL or payload.

        When the type changes the old payload is dropped and the new one is
        built from ``fields`` alone. Within a type, given fields are merged
        over the stored payload; a quiz whose question_type changes starts
        from a fresh question.
        """
        block = self.storage.load_block(block_id)
        if block is None:
            raise BlockNotFound(f"Block not found: {block_id}")

        new_type = parse_block_type(fields['type']) if 'type' in fields else block.type
        if new_type != block.type:
            payload = build_payload(new_type, fields)
        elif new_type == BlockType.QUIZ:
            current = block.question.model_dump()
            incoming = fields.get('question') or fields
            if hasattr(incoming, 'model_dump'):
                incoming = incoming.model_dump()
            if incoming.get('question_type', current['question_type']) != current['question_type']:
                payload = build_payload(new_type, incoming)
            else:
                merged = dict(current)
                merged.update({key: incoming[key] for key in QUESTION_FIELDS if key in incoming})
                payload = build_payload(new_type, merged)
        else:
            merged = block.payload.model_dump()
            merged.update(fields)
            payload = build_payload(new_type, merged)

        if new_type != block.type and block.is_quiz and self.attempts is not None:
            self.attempts.delete_stats(block.id)

        updated = block.model_copy(update={
            'type': new_type,
            'payload': payload,
            'title': fields['title'] if 'title' in fields else block.title,
            'embed_url': fields['embed_url'] if 'embed_url' in fields else block.embed_url,
            'sequence': int(fields['sequence']) if 'sequence' in fields else block.sequence,
        })
        self.storage.save_block(updated)
        logger.info(f"Updated block {block_id}")
        return updated

    def delete(self, block_id: str) -> bool:
        """Remove a block; sibling sequences are left as they are"""
        deleted = self.storage.delete_block(block_id)
        if deleted and self.attempts is not None:
            self.attempts.delete_stats(block_id)
        return deleted

    def reorder(self, ordered_block_ids: List[str], tutorial_id: Optional[str] = None) -> List[Block]:
        """Set each listed block's sequence to its position in the list"""
        if tutorial_id is None:
            for block_id in ordered_block_ids:
                block = self.storage.load_block(block_id)
                if block:
                    tutorial_id = block.tutorial_id
                    break
            else:
                return []
        return self.storage.reorder_blocks(tutorial_id, list(ordered_block_ids))

    def list(self, tutorial_id: str) -> List[Block]:
        return self.storage.list_blocks(tutorial_id)

    def duplicate(self, block_id: str) -> Block:
        """Copy a block to the end of its tutorial"""
        original = self.storage.load_block(block_id)
        if original is None:
            raise BlockNotFound(f"Block not found: {block_id}")
        copy = original.model_copy(deep=True, update={
            'id': _new_id(),
            'title': f"{original.title} (Copy)",
            'sequence': len(self.storage.list_blocks(original.tutorial_id)),
        })
        self.storage.save_block(copy)
        return copy

    def get_tutorial_questions(self, tutorial_id: str) -> List[Dict[str, Any]]:
        """Question data of every quiz block, in sequence order"""
        questions = []
        for block in self.storage.list_blocks(tutorial_id):
            if block.is_quiz:
                questions.append({'block_id': block.id, **block.question.model_dump()})
        return questions


class TutorialManager:
    def __init__(self, storage: TutorialStorage, attempts: Optional[AttemptTracker] = None):
        self.storage = storage
        self.attempts = attempts

    def create(self, title: str = "", content: str = "", metadata: Optional[Dict[str, Any]] = None) -> Tutorial:
        """Create a draft tutorial with default display settings"""
        tutorial = Tutorial(
            id=_new_id(),
            title=title.strip() or "Untitled Tutorial",
            content=content,
            metadata=TutorialMetadata(**(metadata or {})),
        )
        self.storage.save_tutorial(tutorial)
        return tutorial

    def get(self, tutorial_id: str) -> Optional[Tutorial]:
        return self.storage.load_tutorial(tutorial_id)

    def _require(self, tutorial_id: str) -> Tutorial:
        tutorial = self.storage.load_tutorial(tutorial_id)
        if tutorial is None:
            raise TutorialNotFound(f"Tutorial not found: {tutorial_id}")
        return tutorial

    def update(self, tutorial_id: str, title: Optional[str] = None, content: Optional[str] = None,
               status: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> Tutorial:
        tutorial = self._require(tutorial_id)
        changes: Dict[str, Any] = {'modified_at': datetime.now()}
        if title is not None:
            changes['title'] = title.strip() or tutorial.title
        if content is not None:
            changes['content'] = content
        if status in ('draft', 'publish'):
            changes['status'] = status
        if metadata is not None:
            changes['metadata'] = TutorialMetadata(**{**tutorial.metadata.model_dump(), **metadata})
        updated = tutorial.model_copy(update=changes)
        self.storage.save_tutorial(updated)
        return updated

    def publish(self, tutorial_id: str) -> Tutorial:
        return self.update(tutorial_id, status='publish')

    def unpublish(self, tutorial_id: str) -> Tutorial:
        return self.update(tutorial_id, status='draft')

    def is_published(self, tutorial_id: str) -> bool:
        tutorial = self.storage.load_tutorial(tutorial_id)
        return tutorial is not None and tutorial.status == 'publish'

    def delete(self, tutorial_id: str) -> None:
        """Delete a tutorial along with its blocks and their attempt counters"""
        block_ids = self.storage.delete_tutorial(tutorial_id)
        if self.attempts is not None:
            for block_id in block_ids:
                self.attempts.delete_stats(block_id)

    def list(self, status: Optional[str] = None) -> List[Tutorial]:
        tutorials = self.storage.list_tutorials()
        if status:
            tutorials = [t for t in tutorials if t.status == status]
        return tutorials
