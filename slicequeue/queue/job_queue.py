"""Slicing jobs and the queue they wait in.

Features:
- Job lifecycle with enforced state transitions
- Progress messages delivered to the job's originator
- Thread-safe FIFO queue shared by submitters and the worker
"""

import hashlib
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Set, Union
from uuid import uuid4

from slicequeue.errors import InvalidTransitionError, SoftFailure
from slicequeue.utils import file_hash, get_logger

logger = get_logger("queue.job_queue")

# Engines finish their G-code with one of these; a file without one was cut short.
GCODE_COMPLETE_MARKERS = ("filament used", "Completed Successfully", ";End of Gcode")
GCODE_TAIL_BYTES = 10000


class JobState(str, Enum):
    """Lifecycle state of a slicing job."""
    QUEUED = "queued"  # Waiting in queue
    PARTITIONING = "partitioning"  # Splitting a multi-material model
    SLICING = "slicing"  # Engine running
    FINALIZING = "finalizing"  # Writing the settings header
    DONE = "done"
    CANCELLED = "cancelled"  # Engine killed by cancel_current()
    FAILED = "failed"  # Could not be sliced


TERMINAL_STATES: Set[JobState] = {JobState.DONE, JobState.CANCELLED, JobState.FAILED}

_FORWARD_TRANSITIONS: Dict[JobState, Set[JobState]] = {
    JobState.QUEUED: {JobState.PARTITIONING, JobState.SLICING, JobState.FINALIZING},
    JobState.PARTITIONING: {JobState.SLICING, JobState.FINALIZING},
    JobState.SLICING: {JobState.FINALIZING},
    JobState.FINALIZING: {JobState.DONE},
}


@dataclass(eq=False)
class SliceJob:
    """A request to slice one model."""

    input_path: Path
    output_path: Optional[Path] = None
    notify: Optional[Callable[[str], None]] = None
    id: str = field(default_factory=lambda: str(uuid4())[:8])
    state: JobState = JobState.QUEUED

    # Flags read by the originator
    currently_slicing: bool = False
    done_slicing: bool = False

    # Outcome
    sliced: bool = False  # an engine actually ran
    cancel_requested: bool = False
    error: Optional[str] = None
    exit_status: Optional[int] = None
    messages: List[str] = field(default_factory=list)
    soft_failures: List[SoftFailure] = field(default_factory=list)

    # Timing
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    completed_at: Optional[str] = None

    _finished: threading.Event = field(default_factory=threading.Event, repr=False)

    def __post_init__(self):
        """Ensure proper types after initialization."""
        self.input_path = Path(self.input_path)
        if self.output_path is not None:
            self.output_path = Path(self.output_path)

    @property
    def file_location(self) -> str:
        return str(self.input_path)

    @property
    def is_active(self) -> bool:
        """Check if job is being worked on."""
        return self.state in (JobState.PARTITIONING, JobState.SLICING, JobState.FINALIZING)

    @property
    def is_complete(self) -> bool:
        """Check if job has finished (success or failure)."""
        return self.state in TERMINAL_STATES

    @property
    def duration(self) -> Optional[float]:
        """Seconds from submission to a terminal state."""
        if self.completed_at is None:
            return None
        started = datetime.fromisoformat(self.created_at)
        return (datetime.fromisoformat(self.completed_at) - started).total_seconds()

    def transition(self, new_state: JobState) -> None:
        """Move to a new state; raises InvalidTransitionError if it would go backwards."""
        if self.is_complete:
            raise InvalidTransitionError(f"Job {self.id} is already {self.state.value}")
        allowed = new_state in (JobState.CANCELLED, JobState.FAILED) or \
            new_state in _FORWARD_TRANSITIONS.get(self.state, set())
        if not allowed:
            raise InvalidTransitionError(
                f"Job {self.id} cannot go from {self.state.value} to {new_state.value}"
            )
        logger.debug(f"Job {self.id}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        if self.is_complete:
            self.completed_at = datetime.now().isoformat()

    def reset(self) -> None:
        """
        Prepare a finished job for another run.

        The state goes back to QUEUED and the outcome of the previous run is
        cleared. Messages are kept; timing restarts from now.
        """
        self.state = JobState.QUEUED
        self.currently_slicing = False
        self.done_slicing = False
        self.sliced = False
        self.cancel_requested = False
        self.error = None
        self.exit_status = None
        self.soft_failures = []
        self.created_at = datetime.now().isoformat()
        self.completed_at = None
        self._finished.clear()

    def fail(self, error: str) -> None:
        self.error = error
        self.transition(JobState.FAILED)

    def on_slicing_output_message(self, message: str) -> None:
        """Deliver a progress message to the originator."""
        self.messages.append(message)
        if self.notify:
            self.notify(message)

    def record_soft_failure(self, failure: SoftFailure) -> None:
        self.soft_failures.append(failure)
        self.on_slicing_output_message(failure.describe())

    def get_gcode_path(self, output_dir: Union[str, Path]) -> Path:
        """Output path, derived from the model's name and content when not set."""
        if self.output_path is None:
            if self.input_path.exists():
                digest = file_hash(self.input_path, length=12)
            else:
                digest = hashlib.sha256(str(self.input_path).encode()).hexdigest()[:12]
            self.output_path = Path(output_dir) / f"{self.input_path.stem}_{digest}.gcode"
        return self.output_path

    def is_gcode_file_complete(self, path: Optional[Union[str, Path]] = None) -> bool:
        """Check whether a G-code file was written to the end by an engine."""
        path = Path(path) if path is not None else self.output_path
        if path is None or not path.is_file():
            return False
        size = path.stat().st_size
        with open(path, "rb") as f:
            f.seek(max(0, size - GCODE_TAIL_BYTES))
            tail = f.read().decode("utf-8", errors="replace")
        return any(marker in tail for marker in GCODE_COMPLETE_MARKERS)

    def mark_done(self) -> None:
        """Clear the slicing flag and set the done flag."""
        self.currently_slicing = False
        self.done_slicing = True
        self._finished.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the worker has finished with this job."""
        return self._finished.wait(timeout)

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            "id": self.id,
            "input_path": str(self.input_path),
            "output_path": str(self.output_path) if self.output_path else None,
            "state": self.state.value,
            "sliced": self.sliced,
            "done_slicing": self.done_slicing,
            "exit_status": self.exit_status,
            "error": self.error,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }


class SlicingQueue:
    """
    FIFO queue of jobs waiting for the slicing worker.

    All structural changes happen under one lock, which is never held while
    an engine runs.
    """

    def __init__(self):
        self._jobs: Deque[SliceJob] = deque()
        self._lock = threading.Lock()

    def append(self, job: SliceJob) -> None:
        with self._lock:
            self._jobs.append(job)

    def peek(self) -> Optional[SliceJob]:
        """Head of the queue without removing it."""
        with self._lock:
            return self._jobs[0] if self._jobs else None

    def remove_head(self) -> Optional[SliceJob]:
        with self._lock:
            return self._jobs.popleft() if self._jobs else None

    def snapshot(self) -> List[SliceJob]:
        with self._lock:
            return list(self._jobs)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
