"""
Exceptions raised by the tutorial core.

Grading problems (missing or unknown question data) are not exceptions:
they come back as an incorrect GradingResult carrying an error code.
"""


class SplitGuideError(Exception):
    """Base exception for tutorial errors."""
    pass


class InvalidType(SplitGuideError):
    """Raised when a block type is not one of the supported types."""
    pass


class InvalidParent(SplitGuideError):
    """Raised when a block refers to a tutorial that does not exist."""
    pass


class InvalidQuestion(SplitGuideError):
    """Raised when quiz fields do not form a valid question."""
    pass


class InvalidUrl(SplitGuideError):
    """Raised when an embed URL is not a valid http(s) URL."""
    pass


class InvalidImage(SplitGuideError):
    """Raised when an image URL does not point to a supported image file."""
    pass


class TutorialNotFound(SplitGuideError):
    pass


class BlockNotFound(SplitGuideError):
    pass


class EmptyAnswer(SplitGuideError):
    """Raised when submitting with no pending answer."""
    pass


class IllegalTransition(SplitGuideError):
    """Raised when a navigation or submit action is not allowed in the current state."""
    pass


class RemoteValidationFailed(SplitGuideError):
    """Raised by remote graders; the session falls back to local grading."""
    pass
