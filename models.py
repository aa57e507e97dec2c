from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

DEFAULT_FEEDBACK_CORRECT = "Correct!"
DEFAULT_FEEDBACK_INCORRECT = "Incorrect. Try again."


class BlockType(str, Enum):
    TEXT = "text"
    EMBED = "embed"
    QUIZ = "quiz"
    IMAGE = "image"
    DIVIDER = "divider"


class TutorialMetadata(BaseModel):
    template: str = "default"
    color_scheme: str = "light"
    layout: str = "two-column"
    enable_progress_bar: bool = True
    enable_certificates: bool = False
    custom_css: str = ""


class Tutorial(BaseModel):
    id: str
    title: str = "Untitled Tutorial"
    content: str = ""
    status: Literal["draft", "publish"] = "draft"
    block_ids: List[str] = Field(default_factory=list)  # Filled from storage, sorted by sequence
    metadata: TutorialMetadata = Field(default_factory=TutorialMetadata)
    created_at: datetime = Field(default_factory=datetime.now)
    modified_at: datetime = Field(default_factory=datetime.now)


# Question variants, tagged by question_type

class _QuestionBase(BaseModel):
    question_text: str = ""
    feedback_correct: str = DEFAULT_FEEDBACK_CORRECT
    feedback_incorrect: str = DEFAULT_FEEDBACK_INCORRECT
    max_attempts: int = 3


class MultipleChoiceQuestion(_QuestionBase):
    question_type: Literal["multiple_choice"] = "multiple_choice"
    options: List[str] = Field(default_factory=list)
    correct_answer: int = Field(0, ge=0)


class YesNoQuestion(_QuestionBase):
    question_type: Literal["yes_no"] = "yes_no"
    correct_answer: bool = True


class CheckboxQuestion(_QuestionBase):
    question_type: Literal["checkbox"] = "checkbox"
    options: List[str] = Field(default_factory=list)
    correct_answers: List[int] = Field(default_factory=list)


class TextInputQuestion(_QuestionBase):
    question_type: Literal["text_input"] = "text_input"
    correct_answers: List[str] = Field(default_factory=list)
    case_sensitive: bool = False
    show_answer: bool = False


QuestionData = Annotated[
    Union[MultipleChoiceQuestion, YesNoQuestion, CheckboxQuestion, TextInputQuestion],
    Field(discriminator="question_type"),
]

QUESTION_TYPES = ("multiple_choice", "yes_no", "checkbox", "text_input")


# Block payload variants, tagged by kind (always equal to the block type)

class TextPayload(BaseModel):
    kind: Literal["text"] = "text"
    content: str = ""


class EmbedPayload(BaseModel):
    kind: Literal["embed"] = "embed"
    url: str = ""
    embed_type: str = "iframe"
    domain_lock: str = ""


class QuizPayload(BaseModel):
    kind: Literal["quiz"] = "quiz"
    question: QuestionData


class ImagePayload(BaseModel):
    kind: Literal["image"] = "image"
    image_url: str = ""
    image_alt: str = ""
    image_caption: str = ""


class DividerPayload(BaseModel):
    kind: Literal["divider"] = "divider"
    style: str = "solid"


BlockPayload = Annotated[
    Union[TextPayload, EmbedPayload, QuizPayload, ImagePayload, DividerPayload],
    Field(discriminator="kind"),
]


class Block(BaseModel):
    id: str
    tutorial_id: str
    sequence: int = Field(0, ge=0)
    type: BlockType
    title: str = "Block"
    embed_url: Optional[str] = None
    payload: BlockPayload

    @model_validator(mode="after")
    def payload_matches_type(self):
        """A block never carries a payload of another type."""
        if self.payload.kind != self.type.value:
            raise ValueError(
                f"Payload kind '{self.payload.kind}' does not match block type '{self.type.value}'"
            )
        return self

    @property
    def is_quiz(self) -> bool:
        return self.type == BlockType.QUIZ

    @property
    def question(self) -> Optional[QuestionData]:
        if isinstance(self.payload, QuizPayload):
            return self.payload.question
        return None


class AttemptCounter(BaseModel):
    block_id: str
    total_attempts: int = Field(0, ge=0)
    correct_attempts: int = Field(0, ge=0)

    @computed_field
    @property
    def accuracy_percentage(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return round(self.correct_attempts / self.total_attempts * 100, 2)


# Submitted answers are an option index, a set of indices, or free text
Answer = Union[int, List[int], str]


class GradingResult(BaseModel):
    is_correct: bool
    feedback: str
    normalized_submitted: Any = None
    normalized_correct: Any = None
    error: Optional[Literal["question_not_found", "unknown_question_type"]] = None
    authoritative: bool = True

    def to_response(self) -> Dict[str, Any]:
        """Body returned by the validation endpoint."""
        body: Dict[str, Any] = {
            "isCorrect": self.is_correct,
            "feedback": self.feedback,
            "userAnswer": self.normalized_submitted,
        }
        if self.normalized_correct is not None:
            key = "correctAnswers" if isinstance(self.normalized_correct, list) else "correctAnswer"
            body[key] = self.normalized_correct
        if self.error:
            body["code"] = self.error
        return body

    @classmethod
    def from_response(cls, body: Dict[str, Any]) -> "GradingResult":
        """Rebuild a result from an endpoint body; ``isCorrect`` must be a real boolean."""
        if "correctAnswers" in body:
            correct = body["correctAnswers"]
        else:
            correct = body.get("correctAnswer")
        return cls(
            is_correct=body.get("isCorrect"),
            feedback=body.get("feedback") or "",
            normalized_submitted=body.get("userAnswer"),
            normalized_correct=correct,
        )


class AnswerRecord(BaseModel):
    is_correct: bool
    submitted_value: Any = None
    authoritative: bool = True


class SessionProgress(BaseModel):
    current_index: int = 0
    total_blocks: int = 0
    answers: Dict[str, AnswerRecord] = Field(default_factory=dict)
    correct_count: int = 0
    answered_count: int = 0


class ProgressSnapshot(BaseModel):
    tutorial_id: str
    current_block: int = 0
    questions_answered: int = Field(0, ge=0)
    correct_answers: int = Field(0, ge=0)
    completed: bool = False
    timestamp: datetime = Field(default_factory=datetime.now)

    @field_validator("correct_answers")
    @classmethod
    def correct_not_above_answered(cls, v, info):
        answered = info.data.get("questions_answered", 0)
        if v > answered:
            raise ValueError("correct_answers cannot exceed questions_answered")
        return v
