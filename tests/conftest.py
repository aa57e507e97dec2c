"""Shared fixtures: every test gets its own data directory."""

import pytest

from attempt_tracker import AttemptTracker
from block_manager import BlockManager, TutorialManager
from models import Block, BlockType, QuizPayload, TextPayload
from progress_tracker import ProgressTracker
from quiz_endpoints import QuizEndpoints
from tutorial_storage import TutorialStorage


@pytest.fixture
def storage(tmp_path):
    return TutorialStorage(str(tmp_path))


@pytest.fixture
def attempts(tmp_path):
    return AttemptTracker(str(tmp_path))


@pytest.fixture
def progress_tracker(tmp_path):
    return ProgressTracker(str(tmp_path), ttl_seconds=3600)


@pytest.fixture
def tutorials(storage, attempts):
    return TutorialManager(storage, attempts)


@pytest.fixture
def blocks(storage, attempts):
    return BlockManager(storage, attempts)


@pytest.fixture
def endpoints(storage, attempts, progress_tracker):
    return QuizEndpoints(storage, attempts, progress_tracker)


@pytest.fixture
def tutorial(tutorials):
    return tutorials.create("Library Research")


def make_text_block(block_id, sequence, embed_url=None):
    return Block(
        id=block_id,
        tutorial_id="t1",
        sequence=sequence,
        type=BlockType.TEXT,
        title=f"Text {block_id}",
        embed_url=embed_url,
        payload=TextPayload(content="Read this."),
    )


def make_quiz_block(block_id, sequence, question):
    return Block(
        id=block_id,
        tutorial_id="t1",
        sequence=sequence,
        type=BlockType.QUIZ,
        title=f"Quiz {block_id}",
        payload=QuizPayload(question=question),
    )
