"""Recording session lifecycle around an external transcription capability."""

from __future__ import annotations

import os
import sys
import threading
from enum import Enum
from typing import Callable, Protocol, TextIO

import anyio

from expense_voice import get_logger

LOGGER = get_logger("capture.session")

ResultCallback = Callable[[str], None]
ErrorCallback = Callable[[BaseException], None]


class SessionState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    GOT_RESULT = "got_result"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"


class TranscriptionError(RuntimeError):
    """Raised when the transcription capability reports a failure."""


class TranscriptionTimeout(TranscriptionError):
    """Raised when no transcription arrives before the session timeout."""


class Transcriber(Protocol):
    """Speech-to-text capability consumed as a black box.

    ``begin_session`` runs on a daemon thread. It may block until the utterance
    ends and must report through exactly one of the two callbacks.
    """

    def begin_session(self, on_result: ResultCallback, on_error: ErrorCallback) -> None:
        ...


class RecordingSession:
    """Single-use state machine turning one transcription session into text."""

    def __init__(self, transcriber: Transcriber, *, timeout: float = 10.0) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be greater than zero seconds.")
        self._transcriber = transcriber
        self._timeout = timeout
        self._guard = threading.Lock()
        self._state = SessionState.IDLE
        self._result: str | None = None
        self._error: BaseException | None = None
        self._finished = threading.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    async def listen(self) -> str:
        """Run the session and return the transcribed text.

        Raises:
            TranscriptionTimeout: No outcome arrived within the timeout.
            TranscriptionError: The capability reported a failure or ended silently.
        """

        with self._guard:
            if self._state is not SessionState.IDLE:
                raise RuntimeError("RecordingSession instances are single-use.")
            self._state = SessionState.LISTENING
        LOGGER.debug("Recording session listening (timeout=%.1fs)", self._timeout)

        worker = threading.Thread(
            target=self._run_transcriber, name="recording-session", daemon=True
        )
        worker.start()
        with anyio.move_on_after(self._timeout) as scope:
            await anyio.to_thread.run_sync(self._finished.wait, abandon_on_cancel=True)
        # release the abandoned waiter; a blocked transcriber stays on its daemon thread
        self._finished.set()

        with self._guard:
            if self._state is SessionState.LISTENING:
                if scope.cancelled_caught:
                    self._state = SessionState.TIMED_OUT
                else:
                    self._state = SessionState.ERRORED
                    self._error = TranscriptionError(
                        "Transcription session ended without a result."
                    )
            state, result, error = self._state, self._result, self._error

        if state is SessionState.TIMED_OUT:
            LOGGER.warning("Recording session timed out after %.1fs", self._timeout)
            raise TranscriptionTimeout(
                f"No transcription received within {self._timeout:.1f} seconds."
            )
        if state is SessionState.ERRORED:
            LOGGER.warning("Recording session failed: %s", error)
            if isinstance(error, TranscriptionError):
                raise error
            raise TranscriptionError(f"Transcription failed: {error}") from error
        return result or ""

    def _run_transcriber(self) -> None:
        try:
            self._transcriber.begin_session(self._on_result, self._on_error)
        except Exception as exc:
            self._on_error(exc)
        finally:
            self._finished.set()

    def _on_result(self, text: str) -> None:
        with self._guard:
            if self._state is not SessionState.LISTENING:
                LOGGER.warning("Ignoring transcription result in state %s", self._state.value)
                return
            self._state = SessionState.GOT_RESULT
            self._result = text or ""
        self._finished.set()

    def _on_error(self, error: BaseException) -> None:
        with self._guard:
            if self._state is not SessionState.LISTENING:
                LOGGER.warning("Ignoring transcription error in state %s", self._state.value)
                return
            self._state = SessionState.ERRORED
            self._error = error
        self._finished.set()


class PromptTranscriber:
    """Reads one typed (or OS-dictated) line from a stream as the utterance."""

    def __init__(
        self,
        stream: TextIO | None = None,
        *,
        prompt: str = "Dicte el gasto: ",
        output: TextIO | None = None,
    ) -> None:
        self._stream = stream
        self._prompt = prompt
        self._output = output

    def begin_session(self, on_result: ResultCallback, on_error: ErrorCallback) -> None:
        stream = self._stream or sys.stdin
        output = self._output or sys.stderr
        if self._prompt:
            output.write(self._prompt)
            output.flush()
        line = _read_line(stream)
        if not line:
            on_error(EOFError("No input received."))
            return
        on_result(line.strip())


def _read_line(stream: TextIO) -> str:
    """Read one line, going straight to the descriptor when the stream has one.

    Byte-wise reads leave the stream's buffer untouched for later readers and hold
    no interpreter-level lock, so an abandoned read cannot block shutdown.
    """

    try:
        fd = stream.fileno()
    except (AttributeError, OSError):
        return stream.readline()
    data = bytearray()
    while True:
        byte = os.read(fd, 1)
        if not byte:
            break
        data += byte
        if byte == b"\n":
            break
    encoding = getattr(stream, "encoding", None) or "utf-8"
    return data.decode(encoding, errors="replace")


__all__ = [
    "PromptTranscriber",
    "RecordingSession",
    "SessionState",
    "Transcriber",
    "TranscriptionError",
    "TranscriptionTimeout",
]
