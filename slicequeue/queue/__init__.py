"""Slicing queue management for SliceQueue."""

from slicequeue.queue.job_queue import (
    SliceJob,
    JobState,
    SlicingQueue,
)
from slicequeue.queue.worker import (
    SlicingOrchestrator,
    get_orchestrator,
    init_orchestrator,
    shutdown_orchestrator,
)

__all__ = [
    "SliceJob",
    "JobState",
    "SlicingQueue",
    "SlicingOrchestrator",
    "get_orchestrator",
    "init_orchestrator",
    "shutdown_orchestrator",
]
