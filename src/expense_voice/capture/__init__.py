"""Capture flow: transcription session, preview and confirmation."""

from .flow import (
    CANCEL_COMMANDS,
    CONFIRM_COMMANDS,
    ExpenseCapture,
    ExpenseCaptureError,
    apply_confirmation_decision,
    format_preview,
)
from .session import (
    PromptTranscriber,
    RecordingSession,
    SessionState,
    Transcriber,
    TranscriptionError,
    TranscriptionTimeout,
)

__all__ = [
    "CANCEL_COMMANDS",
    "CONFIRM_COMMANDS",
    "ExpenseCapture",
    "ExpenseCaptureError",
    "PromptTranscriber",
    "RecordingSession",
    "SessionState",
    "Transcriber",
    "TranscriptionError",
    "TranscriptionTimeout",
    "apply_confirmation_decision",
    "format_preview",
]
