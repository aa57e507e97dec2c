import pytest

from errors import (
    BlockNotFound,
    InvalidImage,
    InvalidParent,
    InvalidQuestion,
    InvalidType,
    InvalidUrl,
    TutorialNotFound,
)
from models import BlockType, EmbedPayload, QuizPayload, TextPayload


class TestTutorials:
    def test_create_defaults(self, tutorials):
        tutorial = tutorials.create("  ")
        assert tutorial.title == "Untitled Tutorial"
        assert tutorial.status == "draft"
        assert tutorial.metadata.color_scheme == "light"
        assert tutorial.metadata.enable_progress_bar is True
        assert tutorial.metadata.layout == "two-column"

    def test_publish_and_unpublish(self, tutorials, tutorial):
        assert not tutorials.is_published(tutorial.id)
        tutorials.publish(tutorial.id)
        assert tutorials.is_published(tutorial.id)
        tutorials.unpublish(tutorial.id)
        assert not tutorials.is_published(tutorial.id)

    def test_update_ignores_unknown_status(self, tutorials, tutorial):
        updated = tutorials.update(tutorial.id, title="Renamed", status="archived",
                                   metadata={"enable_progress_bar": False})
        assert updated.title == "Renamed"
        assert updated.status == "draft"
        assert updated.metadata.enable_progress_bar is False
        assert updated.metadata.color_scheme == "light"

    def test_update_missing_tutorial(self, tutorials):
        with pytest.raises(TutorialNotFound):
            tutorials.update("missing", title="x")

    def test_list_filters_by_status(self, tutorials, tutorial):
        other = tutorials.create("Other")
        tutorials.publish(other.id)
        assert [t.id for t in tutorials.list(status="publish")] == [other.id]
        assert {t.id for t in tutorials.list()} == {tutorial.id, other.id}

    def test_delete_cascades_to_blocks_and_attempts(self, tutorials, blocks, attempts, tutorial):
        quiz = blocks.create(tutorial.id, "quiz", {"options": ["a", "b"], "correct_answer": 0})
        blocks.create(tutorial.id, "text", {"content": "hi"})
        attempts.record_attempt(quiz.id, True)

        tutorials.delete(tutorial.id)

        assert tutorials.get(tutorial.id) is None
        assert blocks.list(tutorial.id) == []
        assert not attempts.has_stats(quiz.id)


class TestCreate:
    def test_sequence_is_current_block_count(self, blocks, tutorial):
        first = blocks.create(tutorial.id, "text", {"content": "one"})
        second = blocks.create(tutorial.id, BlockType.DIVIDER)
        assert (first.sequence, second.sequence) == (0, 1)
        assert isinstance(first.payload, TextPayload)
        assert second.payload.style == "solid"

    def test_invalid_type(self, blocks, tutorial):
        with pytest.raises(InvalidType):
            blocks.create(tutorial.id, "video", {})

    def test_missing_tutorial(self, blocks):
        with pytest.raises(InvalidParent):
            blocks.create("nope", "text", {})

    def test_quiz_defaults(self, blocks, tutorial):
        block = blocks.create(tutorial.id, "quiz", {"options": ["a", "b"], "correct_answer": 1})
        question = block.question
        assert question.question_type == "multiple_choice"
        assert question.feedback_correct == "Correct!"
        assert question.feedback_incorrect == "Incorrect. Try again."
        assert question.max_attempts == 3

    def test_bad_question(self, blocks, tutorial):
        with pytest.raises(InvalidQuestion):
            blocks.create(tutorial.id, "quiz", {"question_type": "essay"})

    def test_embed_url_must_be_valid(self, blocks, tutorial):
        with pytest.raises(InvalidUrl):
            blocks.create(tutorial.id, "embed", {"url": "javascript:alert(1)"})
        block = blocks.create(tutorial.id, "embed", {"url": "https://example.org/db"})
        assert block.payload.embed_type == "iframe"

    def test_image_extension_checked(self, blocks, tutorial):
        with pytest.raises(InvalidImage):
            blocks.create(tutorial.id, "image", {"image_url": "https://example.org/file.pdf"})
        block = blocks.create(tutorial.id, "image", {"image_url": "https://example.org/a.PNG"})
        assert block.payload.image_url.endswith(".PNG")

    def test_embed_url_kept_for_any_type(self, blocks, tutorial):
        block = blocks.create(tutorial.id, "text", {"embed_url": "https://example.org"})
        assert blocks.get(block.id).embed_url == "https://example.org"


class TestUpdate:
    def test_type_change_discards_old_payload(self, blocks, tutorial):
        block = blocks.create(tutorial.id, "quiz", {
            "question_type": "text_input", "correct_answers": ["x"], "show_answer": True,
        })
        updated = blocks.update(block.id, {"type": "text", "content": "Now plain text"})
        assert updated.type == BlockType.TEXT
        assert updated.payload == TextPayload(content="Now plain text")
        assert updated.question is None

        stored = blocks.storage.load_block_data(block.id)
        assert "question" not in stored["payload"]

    def test_same_type_merges(self, blocks, tutorial):
        block = blocks.create(tutorial.id, "embed", {"url": "https://example.org", "domain_lock": "example.org"})
        updated = blocks.update(block.id, {"title": "Catalog", "url": "https://example.com"})
        assert updated.title == "Catalog"
        assert updated.payload == EmbedPayload(url="https://example.com", domain_lock="example.org")

    def test_title_can_be_cleared(self, blocks, tutorial):
        block = blocks.create(tutorial.id, "text", {"title": "Intro"})
        assert blocks.update(block.id, {"content": "new"}).title == "Intro"
        assert blocks.update(block.id, {"title": ""}).title == ""
        assert blocks.get(block.id).title == ""

    def test_quiz_field_update_keeps_question_type(self, blocks, tutorial):
        block = blocks.create(tutorial.id, "quiz", {
            "question_type": "checkbox", "options": ["a", "b", "c"], "correct_answers": [0],
        })
        updated = blocks.update(block.id, {"correct_answers": [0, 2]})
        assert updated.question.question_type == "checkbox"
        assert updated.question.options == ["a", "b", "c"]
        assert updated.question.correct_answers == [0, 2]

    def test_question_type_switch_starts_fresh(self, blocks, tutorial):
        block = blocks.create(tutorial.id, "quiz", {
            "question_type": "text_input", "correct_answers": ["x"], "case_sensitive": True,
        })
        updated = blocks.update(block.id, {"question_type": "yes_no", "correct_answer": False})
        assert updated.question.question_type == "yes_no"
        assert isinstance(updated.payload, QuizPayload)
        assert "case_sensitive" not in updated.question.model_dump()

    def test_missing_block(self, blocks):
        with pytest.raises(BlockNotFound):
            blocks.update("nope", {"title": "x"})


class TestOrdering:
    def test_delete_leaves_gap(self, blocks, tutorial):
        ids = [blocks.create(tutorial.id, "text").id for _ in range(3)]
        assert blocks.delete(ids[1])
        assert [b.sequence for b in blocks.list(tutorial.id)] == [0, 2]
        assert not blocks.delete(ids[1])

    def test_reorder_assigns_positions(self, blocks, tutorial):
        ids = [blocks.create(tutorial.id, "text").id for _ in range(3)]
        blocks.reorder([ids[2], ids[0], ids[1]])
        listed = blocks.list(tutorial.id)
        assert [b.id for b in listed] == [ids[2], ids[0], ids[1]]
        assert [b.sequence for b in listed] == [0, 1, 2]

    def test_reorder_is_idempotent(self, blocks, tutorial):
        ids = [blocks.create(tutorial.id, "text").id for _ in range(4)]
        order = [ids[3], ids[1], ids[0], ids[2]]
        blocks.reorder(order, tutorial_id=tutorial.id)
        first = {b.id: b.sequence for b in blocks.list(tutorial.id)}
        blocks.reorder(order, tutorial_id=tutorial.id)
        assert {b.id: b.sequence for b in blocks.list(tutorial.id)} == first

    def test_reorder_closes_gaps(self, blocks, tutorial):
        ids = [blocks.create(tutorial.id, "text").id for _ in range(3)]
        blocks.delete(ids[0])
        blocks.reorder(ids[1:])
        assert [b.sequence for b in blocks.list(tutorial.id)] == [0, 1]

    def test_tutorial_block_ids_follow_sequence(self, blocks, tutorials, tutorial):
        ids = [blocks.create(tutorial.id, "text").id for _ in range(2)]
        blocks.reorder(list(reversed(ids)))
        assert tutorials.get(tutorial.id).block_ids == list(reversed(ids))


def test_duplicate_appends_copy(blocks, tutorial):
    original = blocks.create(tutorial.id, "quiz", {
        "title": "Q1", "question_type": "yes_no", "correct_answer": True,
    })
    blocks.create(tutorial.id, "text")
    copy = blocks.duplicate(original.id)
    assert copy.id != original.id
    assert copy.title == "Q1 (Copy)"
    assert copy.sequence == 2
    assert copy.question == original.question


def test_tutorial_questions_in_order(blocks, tutorial):
    blocks.create(tutorial.id, "text")
    quiz = blocks.create(tutorial.id, "quiz", {"question_type": "yes_no", "correct_answer": False})
    questions = blocks.get_tutorial_questions(tutorial.id)
    assert len(questions) == 1
    assert questions[0]["block_id"] == quiz.id
    assert questions[0]["question_type"] == "yes_no"
    assert blocks.get_type(quiz.id) == BlockType.QUIZ
    assert blocks.exists(quiz.id)
