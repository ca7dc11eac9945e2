"""Run state shared by the migration and export engines."""

import threading
from typing import Callable, Optional

from .exceptions import ConflictError
from .results import RunOutcome, RunState

TERMINAL_STATES = {
    RunOutcome.COMPLETED: RunState.COMPLETED,
    RunOutcome.PARTIAL: RunState.COMPLETED,
    RunOutcome.CANCELLED: RunState.CANCELLED,
    RunOutcome.FAILED: RunState.FAILED,
}


class RunCancelled(Exception):
    """Raised inside a run when cancellation has been requested."""

    pass


class RunStateMachine:
    """Tracks one engine's run state: idle, running, then a terminal state.

    Only one run may be active per instance. Cancellation is a flag the
    running task polls at its checkpoints.
    """

    def __init__(self, name: str):
        self.name = name
        self._state = RunState.IDLE
        self._lock = threading.Lock()
        self._cancel_requested = threading.Event()

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state == RunState.RUNNING

    def begin(self, validate: Optional[Callable[[], None]] = None) -> None:
        """Move to running.

        Args:
            validate: Checks run while holding the lock; an exception
                leaves the state unchanged

        Raises:
            ConflictError: If a run is already active
        """
        with self._lock:
            if self._state == RunState.RUNNING:
                raise ConflictError(f'A {self.name} run is already in progress')
            if validate is not None:
                validate()
            self._cancel_requested.clear()
            self._state = RunState.RUNNING

    def finish(self, outcome: RunOutcome) -> None:
        with self._lock:
            self._state = TERMINAL_STATES[outcome]

    def request_cancel(self) -> None:
        self._cancel_requested.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    def check_cancelled(self) -> None:
        """Raise RunCancelled if cancellation was requested."""
        if self._cancel_requested.is_set():
            raise RunCancelled()
