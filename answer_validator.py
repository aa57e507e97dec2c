"""
Answer validation for quiz blocks.

validate() maps a question definition and a submitted answer to a
GradingResult. It performs no I/O and never raises: missing or unreadable
question data is reported through GradingResult.error.
"""

import logging
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from models import (
    QUESTION_TYPES,
    CheckboxQuestion,
    GradingResult,
    MultipleChoiceQuestion,
    QuestionData,
    TextInputQuestion,
    YesNoQuestion,
)

logger = logging.getLogger(__name__)

QUESTION_NOT_FOUND_MESSAGE = "Question data not found"
UNKNOWN_TYPE_MESSAGE = "Unknown question type"

_question_adapter = TypeAdapter(QuestionData)


def parse_question(raw: Union[BaseModel, Mapping[str, Any], None]) -> Optional[QuestionData]:
    """Turn stored question data into a typed question, or None if it can't be read."""
    if raw is None:
        return None
    if isinstance(raw, (MultipleChoiceQuestion, YesNoQuestion, CheckboxQuestion, TextInputQuestion)):
        return raw
    try:
        if isinstance(raw, BaseModel):
            raw = raw.model_dump()
        return _question_adapter.validate_python(dict(raw))
    except (ValidationError, TypeError, ValueError) as e:
        logger.warning(f"Unreadable question data: {str(e)}")
        return None


def _not_found(submitted: Any) -> GradingResult:
    return GradingResult(
        is_correct=False,
        feedback=QUESTION_NOT_FOUND_MESSAGE,
        normalized_submitted=submitted,
        error="question_not_found",
    )


def _unknown_type(submitted: Any) -> GradingResult:
    return GradingResult(
        is_correct=False,
        feedback=UNKNOWN_TYPE_MESSAGE,
        normalized_submitted=submitted,
        error="unknown_question_type",
    )


def _feedback(question, is_correct: bool) -> str:
    return question.feedback_correct if is_correct else question.feedback_incorrect


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_index_set(submitted: Any) -> Optional[List[int]]:
    """Coerce a checkbox submission into a sorted list of unique indices."""
    if submitted is None:
        return []
    items = submitted if isinstance(submitted, (list, tuple, set)) else [submitted]
    indices = set()
    for item in items:
        index = _to_int(item)
        if index is None:
            return None
        indices.add(index)
    return sorted(indices)


def _validate_multiple_choice(question: MultipleChoiceQuestion, submitted: Any) -> GradingResult:
    choice = _to_int(submitted)
    is_correct = choice is not None and choice == question.correct_answer
    return GradingResult(
        is_correct=is_correct,
        feedback=_feedback(question, is_correct),
        normalized_submitted=choice,
        normalized_correct=question.correct_answer,
    )


def _validate_yes_no(question: YesNoQuestion, submitted: Any) -> GradingResult:
    if isinstance(submitted, bool):
        said_yes = submitted
    else:
        said_yes = str(submitted).strip().lower() == "yes"
    is_correct = said_yes == question.correct_answer
    return GradingResult(
        is_correct=is_correct,
        feedback=_feedback(question, is_correct),
        normalized_submitted="yes" if said_yes else "no",
        normalized_correct="yes" if question.correct_answer else "no",
    )


def _validate_checkbox(question: CheckboxQuestion, submitted: Any) -> GradingResult:
    chosen = _to_index_set(submitted)
    correct = sorted(set(question.correct_answers))
    is_correct = chosen is not None and chosen == correct
    return GradingResult(
        is_correct=is_correct,
        feedback=_feedback(question, is_correct),
        normalized_submitted=chosen,
        normalized_correct=correct,
    )


def _validate_text_input(question: TextInputQuestion, submitted: Any) -> GradingResult:
    answer = "" if submitted is None else str(submitted).strip()
    candidates = list(question.correct_answers)
    if not question.case_sensitive:
        answer = answer.lower()
        candidates = [candidate.lower() for candidate in candidates]

    is_correct = answer in set(candidates)
    return GradingResult(
        is_correct=is_correct,
        feedback=_feedback(question, is_correct),
        normalized_submitted=answer,
        # The answer key is only revealed, as authored, when the question allows it
        normalized_correct=list(question.correct_answers) if question.show_answer else None,
    )


def validate(question: Union[BaseModel, Mapping[str, Any], None], submitted: Any) -> GradingResult:
    """Grade a submitted answer against a question definition"""
    if question is None:
        return _not_found(submitted)

    if isinstance(question, Mapping):
        if not question:
            return _not_found(submitted)
        if question.get("question_type") not in QUESTION_TYPES:
            return _unknown_type(submitted)

    parsed = parse_question(question)
    if parsed is None:
        return _not_found(submitted)

    if isinstance(parsed, MultipleChoiceQuestion):
        return _validate_multiple_choice(parsed, submitted)
    if isinstance(parsed, YesNoQuestion):
        return _validate_yes_no(parsed, submitted)
    if isinstance(parsed, CheckboxQuestion):
        return _validate_checkbox(parsed, submitted)
    if isinstance(parsed, TextInputQuestion):
        return _validate_text_input(parsed, submitted)
    return _unknown_type(submitted)
