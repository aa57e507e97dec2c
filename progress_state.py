"""
Learner-side controller for walking through a tutorial.

A TutorialSession sequences the blocks, holds the pending answer for the
current quiz, grades submissions (through a remote grader when one is
configured, otherwise locally) and keeps the session score.

Phases:
    NOT_STARTED -> SHOWING(i) -> AWAITING_VALIDATION(i) -> ANSWERED(i)
    -> SHOWING(i+1) ... -> COMPLETED -> (restart) -> SHOWING(0)

Non-quiz blocks can be left without submitting anything. A quiz block can
only be left once it has been answered, and an answered block can't be
answered again.
"""

import asyncio
import logging
import math
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import answer_validator
from errors import EmptyAnswer, IllegalTransition, RemoteValidationFailed
from models import AnswerRecord, Block, GradingResult, SessionProgress

logger = logging.getLogger(__name__)

# (block_id, answer) -> endpoint response body
RemoteGrader = Callable[[str, Any], Awaitable[Dict[str, Any]]]
CompletionHook = Callable[[Dict[str, Any]], None]


class Phase(str, Enum):
    NOT_STARTED = "not_started"
    SHOWING = "showing"
    AWAITING_VALIDATION = "awaiting_validation"
    ANSWERED = "answered"
    COMPLETED = "completed"


def score_percentage(correct_count: int, answered_count: int) -> int:
    """Whole-number score, halves rounded up; 0 when nothing was answered"""
    return math.floor(correct_count / max(answered_count, 1) * 100 + 0.5)


def _is_empty(answer: Any) -> bool:
    if answer is None:
        return True
    if isinstance(answer, str):
        return answer.strip() == ""
    if isinstance(answer, (list, tuple, set)):
        return len(answer) == 0
    return False


class TutorialSession:
    def __init__(self, tutorial_id: str, blocks: List[Block],
                 remote_grader: Optional[RemoteGrader] = None,
                 remote_timeout: float = 5.0,
                 on_complete: Optional[CompletionHook] = None):
        self.tutorial_id = tutorial_id
        self.blocks = sorted(blocks, key=lambda b: b.sequence)
        self.remote_grader = remote_grader
        self.remote_timeout = remote_timeout
        self.on_complete = on_complete

        self.phase = Phase.NOT_STARTED
        self.progress = SessionProgress(total_blocks=len(self.blocks))
        self.results: Dict[str, GradingResult] = {}
        self.pending_answer: Any = None
        self.final_percentage: Optional[int] = None
        # Bumped on restart/close so late grading responses can be recognised
        self._generation = 0

    # Derived view state

    @property
    def current_index(self) -> int:
        return self.progress.current_index

    @property
    def total_blocks(self) -> int:
        return self.progress.total_blocks

    @property
    def current_block(self) -> Optional[Block]:
        if self.phase in (Phase.NOT_STARTED, Phase.COMPLETED) or not self.blocks:
            return None
        return self.blocks[self.current_index]

    @property
    def current_result(self) -> Optional[GradingResult]:
        block = self.current_block
        return self.results.get(block.id) if block else None

    @property
    def embed_url(self) -> Optional[str]:
        block = self.current_block
        if block and block.embed_url and block.embed_url.strip():
            return block.embed_url
        return None

    @property
    def progress_fraction(self) -> float:
        if not self.total_blocks:
            return 0.0
        return (self.current_index + 1) / self.total_blocks

    @property
    def is_last_block(self) -> bool:
        return self.current_index == self.total_blocks - 1

    @property
    def previous_disabled(self) -> bool:
        return self.current_index == 0

    @property
    def show_next(self) -> bool:
        return not self.is_last_block

    @property
    def show_finish(self) -> bool:
        return self.is_last_block

    @property
    def inputs_disabled(self) -> bool:
        """Answer inputs are locked while grading and once a block is answered"""
        return self.phase in (Phase.AWAITING_VALIDATION, Phase.ANSWERED)

    @property
    def can_leave_block(self) -> bool:
        block = self.current_block
        if block is None:
            return False
        if self.phase == Phase.ANSWERED:
            return True
        return self.phase == Phase.SHOWING and not block.is_quiz

    @property
    def can_submit(self) -> bool:
        block = self.current_block
        return (
            block is not None
            and block.is_quiz
            and self.phase == Phase.SHOWING
            and not _is_empty(self.pending_answer)
        )

    # Transitions

    def start(self) -> None:
        self.progress = SessionProgress(total_blocks=len(self.blocks))
        self.results = {}
        self.final_percentage = None
        if not self.blocks:
            self.phase = Phase.NOT_STARTED
            logger.warning(f"Tutorial {self.tutorial_id} has no blocks to show")
            return
        self._show(0)
        logger.info(f"Started tutorial {self.tutorial_id} with {self.total_blocks} blocks")

    def _show(self, index: int) -> None:
        block = self.blocks[index]
        self.progress.current_index = index
        record = self.progress.answers.get(block.id)
        if record is not None:
            self.phase = Phase.ANSWERED
            self.pending_answer = record.submitted_value
        else:
            self.phase = Phase.SHOWING
            self.pending_answer = None

    def select_option(self, value: Any) -> None:
        """Change the pending answer; checkbox questions toggle the given index"""
        block = self.current_block
        if block is None or not block.is_quiz or self.phase != Phase.SHOWING:
            return
        if block.question.question_type == "checkbox" and not isinstance(value, (list, tuple)):
            chosen = list(self.pending_answer or [])
            if value in chosen:
                chosen.remove(value)
            else:
                chosen.append(value)
            self.pending_answer = chosen
        else:
            self.pending_answer = value

    async def submit(self) -> GradingResult:
        block = self.current_block
        if block is None or not block.is_quiz:
            raise IllegalTransition("Only quiz blocks take answers")
        if self.phase != Phase.SHOWING:
            raise IllegalTransition(f"Cannot submit while {self.phase.value}")
        if _is_empty(self.pending_answer):
            raise EmptyAnswer("Please select an answer.")

        answer = self.pending_answer
        index = self.current_index
        generation = self._generation
        self.phase = Phase.AWAITING_VALIDATION

        result = await self._grade(block, answer)

        if (generation != self._generation or index != self.current_index
                or self.phase != Phase.AWAITING_VALIDATION):
            logger.warning(f"Dropping stale grading result for block {block.id}")
            return result

        self._record(block, answer, result)
        return result

    async def _grade(self, block: Block, answer: Any) -> GradingResult:
        if self.remote_grader is None:
            return answer_validator.validate(block.question, answer)

        try:
            body = await asyncio.wait_for(self.remote_grader(block.id, answer), self.remote_timeout)
            if not isinstance(body, dict) or not isinstance(body.get('isCorrect'), bool):
                raise RemoteValidationFailed(f"Unexpected grading response: {body!r}")
            return GradingResult.from_response(body)
        except (RemoteValidationFailed, asyncio.TimeoutError) as e:
            logger.warning(f"Remote validation failed for block {block.id}, grading locally: {str(e)}")
        except Exception as e:
            logger.warning(f"Remote validation failed for block {block.id}, grading locally: {str(e)}",
                           exc_info=True)

        # Keep the learner moving: grade locally, flagged as unverified
        result = answer_validator.validate(block.question, answer)
        return result.model_copy(update={'authoritative': False})

    def _record(self, block: Block, answer: Any, result: GradingResult) -> None:
        self.results[block.id] = result
        self.progress.answers[block.id] = AnswerRecord(
            is_correct=result.is_correct,
            submitted_value=answer,
            authoritative=result.authoritative,
        )
        self.progress.answered_count += 1
        if result.is_correct:
            self.progress.correct_count += 1
        self.phase = Phase.ANSWERED

    def next(self) -> None:
        if not self.can_leave_block:
            raise IllegalTransition("Answer this question before moving on")
        if self.is_last_block:
            raise IllegalTransition("Already at the last block; finish instead")
        self._show(self.current_index + 1)

    def previous(self) -> None:
        if not self.can_leave_block:
            raise IllegalTransition("Answer this question before moving on")
        if self.current_index == 0:
            raise IllegalTransition("Already at the first block")
        self._show(self.current_index - 1)

    def finish(self) -> int:
        """Complete the tutorial and return the score percentage"""
        if not self.can_leave_block or not self.is_last_block:
            raise IllegalTransition("Finish is only available on the last block")
        self.final_percentage = score_percentage(self.progress.correct_count, self.progress.answered_count)
        self.phase = Phase.COMPLETED
        logger.info(
            f"Tutorial {self.tutorial_id} completed: "
            f"{self.progress.correct_count}/{self.progress.answered_count} ({self.final_percentage}%)"
        )

        if self.on_complete is not None:
            try:
                self.on_complete(self.completion_snapshot())
            except Exception as e:
                logger.error(f"Error reporting completion: {str(e)}", exc_info=True)
        return self.final_percentage

    def completion_snapshot(self) -> Dict[str, Any]:
        return {
            'tutorial_id': self.tutorial_id,
            'current_block': self.current_index,
            'questions_answered': self.progress.answered_count,
            'correct_answers': self.progress.correct_count,
            'completed': self.phase == Phase.COMPLETED,
        }

    def restart(self) -> None:
        """Drop all answers and begin again from the first block"""
        self._generation += 1
        self.phase = Phase.NOT_STARTED
        self.pending_answer = None
        self.start()

    def close(self) -> None:
        """The learner left; any grading still in flight is ignored"""
        self._generation += 1
        self.phase = Phase.NOT_STARTED
        self.pending_answer = None

    async def handle_key(self, key: str) -> bool:
        """Keyboard shortcuts; returns True when the key did something"""
        if key == "ArrowLeft" and self.can_leave_block and not self.previous_disabled:
            self.previous()
            return True
        if key == "ArrowRight" and self.can_leave_block and self.show_next:
            self.next()
            return True
        if key == "Enter" and self.can_submit:
            await self.submit()
            return True
        logger.debug(f"Ignoring key {key!r} while {self.phase.value}")
        return False
