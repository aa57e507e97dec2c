"""
Request handlers for quiz grading and learner progress.

Each handler takes already-decoded request data and returns a
``(body, status)`` pair for whatever transport forwards it. Handlers do not
raise; failures become ``{"code": ..., "message": ...}`` bodies.
"""

import logging
from typing import Any, Dict, Tuple

from pydantic import BaseModel, ValidationError

import answer_validator
from attempt_tracker import AttemptTracker
from models import Answer, BlockType, ProgressSnapshot
from progress_tracker import ProgressTracker
from tutorial_storage import TutorialStorage

logger = logging.getLogger(__name__)

Response = Tuple[Dict[str, Any], int]


class ValidateAnswerRequest(BaseModel):
    answer: Answer


def _error(code: str, message: str, status: int) -> Response:
    return {'code': code, 'message': message}, status


class QuizEndpoints:
    def __init__(self, storage: TutorialStorage, attempts: AttemptTracker, progress: ProgressTracker):
        self.storage = storage
        self.attempts = attempts
        self.progress = progress

    def _quiz_question(self, block_id: str):
        """Raw stored question data for a quiz block, or None"""
        data = self.storage.load_block_data(block_id)
        if not data or data.get('type') != BlockType.QUIZ.value:
            return None
        return (data.get('payload') or {}).get('question')

    def validate_answer(self, block_id: str, params: Dict[str, Any]) -> Response:
        """Grade an answer and count the attempt"""
        try:
            request = ValidateAnswerRequest(**(params or {}))
        except ValidationError as e:
            logger.warning(f"Rejected validation request for block {block_id}: {str(e)}")
            return _error('invalid_request', 'An answer is required', 400)

        question = self._quiz_question(block_id)
        result = answer_validator.validate(question, request.answer)

        if result.error == 'question_not_found':
            return _error('not_found', result.feedback, 404)
        if result.error:
            # Ungradable questions never count as attempts
            return result.to_response(), 200

        try:
            self.attempts.record_attempt(block_id, result.is_correct)
        except Exception as e:
            return _error('attempt_error', f"Could not record attempt: {str(e)}", 500)
        return result.to_response(), 200

    def get_question(self, block_id: str) -> Response:
        question = self._quiz_question(block_id)
        if not question:
            return _error('not_found', 'Question not found', 404)
        return question, 200

    def get_question_stats(self, block_id: str) -> Response:
        if not self._quiz_question(block_id):
            return _error('not_found', 'Question not found', 404)
        return self.attempts.get_stats(block_id).model_dump(exclude={'block_id'}), 200

    def save_progress(self, params: Dict[str, Any]) -> Response:
        try:
            snapshot = ProgressSnapshot(**(params or {}))
        except ValidationError as e:
            logger.warning(f"Rejected progress snapshot: {str(e)}")
            return _error('invalid_request', 'Invalid progress data', 400)

        try:
            session_key = self.progress.save_progress(snapshot)
        except OSError as e:
            return _error('progress_error', str(e), 500)
        return {'success': True, 'session_key': session_key, 'message': 'Progress saved'}, 200

    def get_progress(self, session_key: str) -> Response:
        session_key = (session_key or '').strip()
        if not session_key:
            return _error('missing_key', 'Session key required', 400)

        progress = self.progress.load_progress(session_key)
        if not progress:
            return _error('not_found', 'Progress not found or expired', 404)
        return progress, 200
