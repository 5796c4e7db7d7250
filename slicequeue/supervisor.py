"""Slicing engine process supervision.

Runs one engine at a time, either as a child process (stdout forwarded line
by line, stderr drained in the background) or by calling an embeddable
engine's entry point on the caller's thread.

Note: Child processes are started with an argv list, never through a shell.
"""

import importlib
import os
import subprocess
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Union

from slicequeue.engines.commands import quote_path, to_argv, to_command_line
from slicequeue.errors import EngineLaunchError, SoftFailure
from slicequeue.utils import get_logger

logger = get_logger("supervisor")

OutputCallback = Callable[[str], None]
SoftFailureCallback = Callable[[SoftFailure], None]
InProcessEntryPoint = Callable[[str, OutputCallback], Optional[int]]

INTERMEDIATE_FILE_MESSAGE = "Saving intermediate file"
TRANSITION_MARKER = "=>"
OUTPUT_EXTENSION = ".gcode"

# Readers finish as soon as the child closes its pipes; this only guards
# against grandchildren that inherited them.
READER_JOIN_TIMEOUT = 5.0


def normalize_output_line(line: str) -> str:
    """Turn a raw engine output line into a progress message."""
    message = line.replace(TRANSITION_MARKER, "").strip()
    if OUTPUT_EXTENSION in message:
        message = INTERMEDIATE_FILE_MESSAGE
    return message + "..."


def resolve_entry_point(import_string: str) -> InProcessEntryPoint:
    """Load an in-process engine from a 'package.module:function' string."""
    module_name, _, attribute = import_string.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Entry point must look like 'module:function', got {import_string!r}")
    module = importlib.import_module(module_name)
    entry_point = getattr(module, attribute)
    if not callable(entry_point):
        raise TypeError(f"{import_string} is not callable")
    return entry_point


class ProcessSupervisor:
    """
    Owns the running slicing engine.

    Both the child process handle and the in-process job slot are guarded by
    one lock so cancel() can be called from any thread.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._current_job: Optional[Any] = None
        self._job_output: Optional[OutputCallback] = None
        self.last_stderr = ""

    @property
    def is_running(self) -> bool:
        with self._lock:
            if self._current_job is not None:
                return True
            return self._process is not None and self._process.poll() is None

    @property
    def current_job(self) -> Optional[Any]:
        """Job being sliced by the in-process engine, if any."""
        with self._lock:
            return self._current_job

    def _build_command(self, executable: Union[str, Path], arguments: Sequence[str]):
        if os.name == "nt":
            # Windows takes the command line verbatim.
            return f"{quote_path(executable)} {to_command_line(arguments)}"
        return [str(executable), *to_argv(arguments)]

    def run(
        self,
        executable: Union[str, Path],
        arguments: Sequence[str],
        on_output_line: OutputCallback,
        on_soft_failure: Optional[SoftFailureCallback] = None,
    ) -> int:
        """
        Run an engine as a child process and wait for it to exit.

        Args:
            executable: Engine executable
            arguments: Quoted argument tokens from build_arguments()
            on_output_line: Receives each normalized stdout line as it arrives
            on_soft_failure: Receives stream read failures

        Returns:
            Process exit status (negative when killed by a signal)

        Raises:
            EngineLaunchError: The process could not be started
        """
        command = self._build_command(executable, arguments)
        logger.debug(f"Launching engine: {command}")

        popen_kwargs = {}
        if os.name == "nt":
            popen_kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                bufsize=1,
                **popen_kwargs,
            )
        except (OSError, ValueError) as e:
            raise EngineLaunchError(f"Could not start {executable}: {e}") from e

        with self._lock:
            self._process = process

        stderr_lines: List[str] = []
        readers = [
            threading.Thread(
                target=self._pump,
                args=(process.stdout, lambda line: on_output_line(normalize_output_line(line)),
                      on_soft_failure, "stdout"),
                name="slicequeue-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=self._pump,
                args=(process.stderr, stderr_lines.append, on_soft_failure, "stderr"),
                name="slicequeue-stderr",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        try:
            return_code = process.wait()
            for reader in readers:
                reader.join(READER_JOIN_TIMEOUT)
        finally:
            with self._lock:
                self._process = None
            self.last_stderr = "\n".join(stderr_lines)

        logger.info(f"Engine exited with status {return_code}")
        return return_code

    @staticmethod
    def _pump(stream, on_line: OutputCallback, on_soft_failure: Optional[SoftFailureCallback], name: str):
        """Forward lines from one pipe until it closes. Read errors are reported, not raised."""
        try:
            for raw_line in stream:
                line = raw_line.rstrip("\r\n")
                logger.debug(f"[{name}] {line}")
                on_line(line)
        except Exception as e:
            failure = SoftFailure(stage="output_stream", message=f"Lost engine {name}: {e}")
            logger.warning(failure.message)
            if on_soft_failure:
                on_soft_failure(failure)
        finally:
            stream.close()

    def run_in_process(
        self,
        entry_point: InProcessEntryPoint,
        command_line: str,
        job: Any,
        on_output_line: OutputCallback,
    ) -> int:
        """
        Run an embeddable engine on the calling thread.

        The engine calls back with log lines; they are routed to `job` only
        while this call is in progress.

        Returns:
            The entry point's return value, 0 when it returns None

        Raises:
            EngineLaunchError: The engine raised
        """
        with self._lock:
            if self._current_job is not None:
                raise EngineLaunchError("An in-process slice is already running")
            self._current_job = job
            self._job_output = on_output_line

        logger.debug(f"Running engine in process: {command_line}")
        try:
            result = entry_point(command_line, self._route_engine_log)
        except Exception as e:
            raise EngineLaunchError(f"In-process engine failed: {e}") from e
        finally:
            with self._lock:
                self._current_job = None
                self._job_output = None

        return int(result or 0)

    def _route_engine_log(self, message: str) -> None:
        with self._lock:
            sink = self._job_output
        if sink is None:
            return
        sink(normalize_output_line(message))

    def cancel(self) -> bool:
        """
        Kill the running child process.

        The in-process engine cannot be interrupted; cancelling it is a no-op.

        Returns:
            True if a running process was killed
        """
        with self._lock:
            process = self._process
            if process is not None and process.poll() is None:
                process.kill()
                logger.info(f"Killed slicing engine (pid {process.pid})")
                return True
            if self._current_job is not None:
                logger.info("In-process slicing cannot be interrupted; letting it finish")
        return False
