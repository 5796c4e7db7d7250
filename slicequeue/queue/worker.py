"""Slicing worker with queue support.

One background thread takes jobs from a FIFO queue, one at a time, while a
printer is connected: partition the model, write the engine settings, run
the engine, append the settings header, mark the job done.

Note: Only one job is ever active. Submitting and cancelling never wait on
a running engine.
"""

import threading
from typing import Callable, List, Optional

from slicequeue.config import Settings, get_settings
from slicequeue.engines.commands import (
    EngineStrategy,
    build_arguments,
    get_strategy,
    to_command_line,
)
from slicequeue.engines.registry import EngineDescriptor, EngineKind, EngineRegistry
from slicequeue.errors import EngineUnavailableError, SlicingError, SoftFailure
from slicequeue.partition import PARTITIONED_EXTENSION, MeshPartitioner
from slicequeue.postprocess import append_settings_header, product_stamp
from slicequeue.profiles import ProfileSettings
from slicequeue.queue.job_queue import JobState, SliceJob, SlicingQueue
from slicequeue.supervisor import InProcessEntryPoint, ProcessSupervisor, resolve_entry_point
from slicequeue.utils import ensure_dir, get_logger

logger = get_logger("queue.worker")

Dispatcher = Callable[[Callable[[], None]], None]

PREPARING_MESSAGE = "Preparing to slice model..."


def run_immediately(action: Callable[[], None]) -> None:
    """Default dispatcher: run job updates on the worker thread."""
    action()


class SlicingOrchestrator:
    """
    Serializes slicing jobs onto a single worker thread.

    Progress messages and the final done flag are handed to `dispatcher`,
    so a UI can run them on its own thread.
    """

    def __init__(
        self,
        printer,
        profile: ProfileSettings,
        settings: Optional[Settings] = None,
        registry: Optional[EngineRegistry] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        dispatcher: Optional[Dispatcher] = None,
        in_process_entry_point: Optional[InProcessEntryPoint] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            printer: Anything with an `is_connected` property
            profile: Settings of the active printer
            settings: Application settings (global settings if None)
            registry: Engine registry (created from settings if None)
            supervisor: Engine process supervisor
            dispatcher: Runs job updates on the originator's thread
            in_process_entry_point: Embeddable engine; overrides the configured import string
        """
        self.settings = settings or get_settings()
        self.printer = printer
        self.profile = profile
        self.registry = registry or EngineRegistry(self.settings)
        self.supervisor = supervisor or ProcessSupervisor()
        self.dispatcher = dispatcher or run_immediately
        self._in_process_entry_point = in_process_entry_point

        self.queue = SlicingQueue()
        self._halt = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()
        self._active_lock = threading.Lock()
        self._active_job: Optional[SliceJob] = None

        self.total_jobs_processed = 0
        self.total_jobs_failed = 0

        if hasattr(printer, "add_change_callback"):
            printer.add_change_callback(lambda connected: self._wake.set() if connected else None)

    @property
    def engines(self) -> List[EngineDescriptor]:
        """Installed slicing engines."""
        return self.registry.available()

    @property
    def active_job(self) -> Optional[SliceJob]:
        with self._active_lock:
            return self._active_job

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread. A halted worker is not restarted."""
        with self._start_lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._worker_loop, name="slicequeue-worker", daemon=True
            )
            self._thread.start()
        logger.info("Slicing worker started")

    def halt_worker(self) -> None:
        """Stop dispatching after the current iteration. Queued jobs stay queued."""
        if not self._halt.is_set():
            self._halt.set()
            self._wake.set()
            logger.info("Slicing worker halting")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker thread to exit; True if it has."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def enqueue(self, job: SliceJob) -> SliceJob:
        """Add a job to the end of the queue and return immediately.

        A job that already finished is reset and sliced again.
        """
        if job.is_complete:
            job.reset()
        job.done_slicing = False
        job.on_slicing_output_message(PREPARING_MESSAGE)
        self.queue.append(job)
        logger.info(f"Job {job.id} queued: {job.input_path.name} ({len(self.queue)} in queue)")
        self._wake.set()
        return job

    def cancel_current(self) -> None:
        """Kill the engine slicing the active job. Queued jobs are left alone."""
        with self._active_lock:
            job = self._active_job
            if job is None:
                return
            job.cancel_requested = True
            if not self.supervisor.cancel():
                job.cancel_requested = False

    # Worker thread

    def _worker_loop(self) -> None:
        while not self._halt.is_set():
            self._wake.clear()
            if self.printer.is_connected and len(self.queue) > 0:
                job = self.queue.peek()
                try:
                    self._process_job(job)
                except Exception:
                    logger.exception(f"Job {job.id} could not be finished")
                finally:
                    self.queue.remove_head()
            self._wake.wait(self.settings.poll_interval)
        logger.info("Slicing worker stopped")

    def _process_job(self, job: SliceJob) -> None:
        """Drive one job to a terminal state. Never raises."""
        with self._active_lock:
            self._active_job = job
        logger.info(f"Slicing job {job.id}: {job.input_path.name}")
        try:
            self._slice(job)
        except SlicingError as e:
            logger.error(f"Job {job.id} failed: {e}")
            self._fail(job, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error slicing job {job.id}")
            self._fail(job, f"Unexpected error: {e}")
        finally:
            with self._active_lock:
                self._active_job = None

        if job.state == JobState.FINALIZING:
            job.transition(JobState.DONE)
        if job.state == JobState.FAILED:
            self.total_jobs_failed += 1
        self.total_jobs_processed += 1
        logger.info(f"Job {job.id} finished: {job.state.value}")
        self._dispatch(job.mark_done)

    def _fail(self, job: SliceJob, error: str) -> None:
        if not job.is_complete:
            job.fail(error)
        self._send(job, f"Slicing failed: {error}")

    def _slice(self, job: SliceJob) -> None:
        engine = self.profile.engine
        strategy = get_strategy(engine)

        if job.input_path.suffix.lower() == PARTITIONED_EXTENSION:
            job.transition(JobState.PARTITIONING)
        partitioner = MeshPartitioner(self.profile.extruder_count, self.settings.resolved_scratch_dir)
        files = partitioner.resolve(job.input_path)

        if not files[0].exists():
            # Reported as done without slicing; see DESIGN.md open questions.
            logger.warning(f"Job {job.id}: {files[0]} is not on disk, skipping")
            self._send(job, "Model file not found, nothing to slice...")
            job.transition(JobState.FINALIZING)
            return

        job.currently_slicing = True
        output_dir = ensure_dir(self.settings.resolved_gcode_output_dir)
        config_path = self.profile.write_config(
            output_dir / self.profile.config_file_name(), strategy.config_flavour
        )
        gcode_path = job.get_gcode_path(output_dir)

        if not gcode_path.exists() or not job.is_gcode_file_complete(gcode_path):
            job.transition(JobState.SLICING)
            engine_settings = self.profile.cura_command_line_settings() \
                if strategy.settings_on_command_line else ()
            arguments = build_arguments(engine, config_path, gcode_path, files, engine_settings)
            logger.debug(f"Job {job.id} arguments: {to_command_line(arguments)}")

            job.exit_status = self._run_engine(job, engine, strategy, arguments)
            job.sliced = True

            with self._active_lock:
                cancelled = job.cancel_requested
            if cancelled:
                logger.info(f"Job {job.id} cancelled")
                job.transition(JobState.CANCELLED)
                self._send(job, "Slicing cancelled...")
                return
            if job.exit_status != 0:
                # The output file, not the exit status, decides success.
                logger.warning(f"Job {job.id}: engine exited with status {job.exit_status}")
        else:
            logger.info(f"Job {job.id}: {gcode_path.name} is already sliced")

        job.transition(JobState.FINALIZING)
        failure = append_settings_header(
            gcode_path,
            config_path,
            product=product_stamp(self.settings.oem_name, self.settings.window_title_extra),
            build=self.settings.build_version,
        )
        if failure:
            self._report_soft_failure(job, failure)

    def _use_in_process(self, engine: EngineKind, strategy: EngineStrategy) -> bool:
        if not strategy.supports_in_process:
            return False
        descriptor = self.registry.lookup(engine)
        return self.settings.run_in_process or descriptor is None or descriptor.path is None

    def _entry_point(self) -> InProcessEntryPoint:
        if self._in_process_entry_point is None:
            if not self.settings.in_process_entry_point:
                raise EngineUnavailableError("No in-process engine is configured")
            try:
                self._in_process_entry_point = resolve_entry_point(self.settings.in_process_entry_point)
            except (ImportError, AttributeError, TypeError, ValueError) as e:
                raise EngineUnavailableError(f"Cannot load in-process engine: {e}") from e
        return self._in_process_entry_point

    def _run_engine(self, job: SliceJob, engine: EngineKind, strategy: EngineStrategy, arguments) -> int:
        on_line = lambda message: self._send(job, message)
        if self._use_in_process(engine, strategy):
            return self.supervisor.run_in_process(
                self._entry_point(), to_command_line(arguments), job, on_line
            )
        return self.supervisor.run(
            self.registry.engine_path(engine),
            arguments,
            on_line,
            on_soft_failure=lambda failure: self._report_soft_failure(job, failure),
        )

    def _dispatch(self, action: Callable[[], None]) -> None:
        """Hand a job update to the dispatcher. Errors from the originator are logged and dropped."""
        try:
            self.dispatcher(action)
        except Exception:
            logger.exception("Job update callback failed")

    def _send(self, job: SliceJob, message: str) -> None:
        self._dispatch(lambda: job.on_slicing_output_message(message))

    def _report_soft_failure(self, job: SliceJob, failure: SoftFailure) -> None:
        self._dispatch(lambda: job.record_soft_failure(failure))

    def get_metrics(self) -> dict:
        return {
            "queue_size": len(self.queue),
            "active_job": self.active_job.id if self.active_job else None,
            "total_processed": self.total_jobs_processed,
            "total_failed": self.total_jobs_failed,
        }


_orchestrator: Optional[SlicingOrchestrator] = None


def get_orchestrator() -> SlicingOrchestrator:
    if _orchestrator is None:
        raise RuntimeError("Slicing orchestrator has not been initialized")
    return _orchestrator


def init_orchestrator(printer, profile: ProfileSettings, **kwargs) -> SlicingOrchestrator:
    """Create and start the process-wide orchestrator, halting any previous one."""
    global _orchestrator
    if _orchestrator is not None:
        shutdown_orchestrator()
    _orchestrator = SlicingOrchestrator(printer, profile, **kwargs)
    _orchestrator.start()
    return _orchestrator


def shutdown_orchestrator(timeout: Optional[float] = 5.0) -> None:
    global _orchestrator
    if _orchestrator is None:
        return
    _orchestrator.halt_worker()
    _orchestrator.join(timeout)
    _orchestrator = None
