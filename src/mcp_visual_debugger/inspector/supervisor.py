"""Inspector process supervisor.

Spawns the MCP inspector, drains its stdout/stderr chunk by chunk and resolves
start() with the handshake URL the inspector prints once it is ready.

Four event sources race during start(): a handshake URL on stdout, the port
conflict signature on stderr, the process exiting, and the start timeout. They
all settle the same future through _settle(), which ignores everything after
the first outcome, so exactly one of them is reported.
"""
from __future__ import annotations

import asyncio
import codecs
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import psutil

from ..core.config import RunConfiguration
from ..core.errors import (
    InspectorTimeoutError,
    InvalidArgumentError,
    PortInUseError,
    ProcessExitedError,
    StartupError,
)
from .handshake import HandshakeMatcher

logger = logging.getLogger(__name__)
output_logger = logging.getLogger(f"{__name__}.output")

# How long to keep draining pipes after exit so a last-moment URL is not lost
EXIT_DRAIN_TIMEOUT = 1.0

READ_CHUNK = 4096
MAX_LOG_LINE = 64 * 1024

PORT_IN_USE_MESSAGE = "Inspector port is already in use. Please kill existing processes."

# Quiet period after which a URL ending the output so far counts as complete
QUIET_FLUSH_DELAY = 0.2


@dataclass
class InspectorHandle:
    """The running inspector process and its handshake URL.

    handshake_url is None until discovered and is never replaced afterwards.
    """
    process: asyncio.subprocess.Process
    handshake_url: Optional[str] = None
    exit_code: Optional[int] = None
    released: bool = False
    reader_tasks: List[asyncio.Task] = field(default_factory=list)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.returncode is None


class InspectorSupervisor:
    """Owns the single inspector process of a run."""

    def __init__(self, matcher_factory: Callable[[], HandshakeMatcher] = HandshakeMatcher,
                 stop_grace: float = 5.0):
        self.matcher_factory = matcher_factory
        self.stop_grace = stop_grace
        self._handle: Optional[InspectorHandle] = None
        self._outcome: Optional[asyncio.Future] = None

    @property
    def handle(self) -> Optional[InspectorHandle]:
        return self._handle

    @property
    def handshake_url(self) -> Optional[str]:
        return self._handle.handshake_url if self._handle else None

    # ---------------------------- Lifecycle ----------------------------
    async def start(self, config: RunConfiguration) -> str:
        """Launch the inspector and wait for its handshake URL.

        Raises:
            PortInUseError: stderr reported a port conflict first.
            ProcessExitedError: the process exited before printing a URL.
            InspectorTimeoutError: nothing happened within config.start_timeout.
            StartupError: the launcher itself could not be executed.
        """
        if self._handle is not None:
            raise InvalidArgumentError("Inspector already started for this run", stage="inspector-start")

        self.stop_grace = config.stop_grace
        argv = list(config.inspector_command)
        logger.info(f"Starting MCP Inspector: {' '.join(argv)}")
        logger.info(f"  Working directory: {config.working_dir}")

        loop = asyncio.get_running_loop()
        self._outcome = loop.create_future()

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(config.working_dir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self._outcome.cancel()
            raise StartupError(f"Could not launch inspector ({argv[0]}): {e}") from e

        handle = InspectorHandle(process=proc)
        self._handle = handle
        logger.info(f"Inspector process started (PID {proc.pid})")

        stdout_reader = asyncio.create_task(
            self._read_stream(proc.stdout, "stdout", self.matcher_factory()),
            name=f"inspector-stdout-{proc.pid}",
        )
        stderr_reader = asyncio.create_task(
            self._read_stream(proc.stderr, "stderr", self.matcher_factory()),
            name=f"inspector-stderr-{proc.pid}",
        )
        exit_watcher = asyncio.create_task(
            self._watch_exit(proc, [stdout_reader, stderr_reader]),
            name=f"inspector-exit-{proc.pid}",
        )
        handle.reader_tasks.extend([stdout_reader, stderr_reader, exit_watcher])

        # asyncio.wait never cancels the future, so a late URL still lands on
        # the same object and is ignored by _settle()
        await asyncio.wait({self._outcome}, timeout=config.start_timeout)
        self._settle(error=InspectorTimeoutError(
            f"Timeout waiting for inspector to start ({config.start_timeout:g}s)",
            stage="inspector-start",
        ))

        url = self._outcome.result()
        logger.info(f"Inspector URL found: {url}")
        return url

    async def stop(self) -> None:
        """Terminate the inspector and its children. Idempotent, bounded."""
        handle = self._handle
        if handle is None or handle.released:
            return
        handle.released = True

        if self._outcome is not None and not self._outcome.done():
            self._outcome.cancel()

        proc = handle.process
        if proc.returncode is None:
            logger.info(f"Stopping inspector (PID {proc.pid})")
            children = self._children_of(proc.pid)
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
            for child in children:
                try:
                    child.terminate()
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    continue

            try:
                await asyncio.wait_for(proc.wait(), timeout=self.stop_grace)
            except asyncio.TimeoutError:
                logger.warning(f"Inspector ignored SIGTERM for {self.stop_grace:g}s, killing")
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                try:
                    await asyncio.wait_for(proc.wait(), timeout=self.stop_grace)
                except asyncio.TimeoutError:
                    logger.error(f"Inspector PID {proc.pid} did not exit after SIGKILL")

            # npx leaves the actual inspector servers as children
            await asyncio.to_thread(self._reap_children, children)

        handle.exit_code = proc.returncode

        for task in handle.reader_tasks:
            task.cancel()
        await asyncio.gather(*handle.reader_tasks, return_exceptions=True)
        logger.info(f"Inspector stopped (exit code {handle.exit_code})")

    # ---------------------------- Race resolution ----------------------------
    def _settle(self, url: Optional[str] = None, error: Optional[BaseException] = None) -> bool:
        """Resolve start() once. Returns False when an outcome already exists."""
        outcome = self._outcome
        if outcome is None or outcome.done():
            return False
        if url is not None:
            # First match wins; the handle never sees a second URL
            self._handle.handshake_url = url
            outcome.set_result(url)
        else:
            outcome.set_exception(error)
        return True

    async def _read_stream(self, stream: asyncio.StreamReader, name: str,
                           matcher: HandshakeMatcher) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending_line = ""
        chunk_count = 0
        while True:
            if name == "stdout" and matcher.pending:
                # A URL at the very end of the output is only complete once the stream goes quiet
                try:
                    raw = await asyncio.wait_for(stream.read(READ_CHUNK), timeout=QUIET_FLUSH_DELAY)
                except asyncio.TimeoutError:
                    self._offer_url(matcher.flush())
                    continue
            else:
                raw = await stream.read(READ_CHUNK)
            if not raw:
                break
            chunk_count += 1
            text = decoder.decode(raw)

            pending_line += text
            *lines, pending_line = pending_line.split("\n")
            if len(pending_line) > MAX_LOG_LINE:
                lines.append(pending_line)
                pending_line = ""
            for line in lines:
                self._log_output(name, line)

            if name == "stdout":
                self._offer_url(matcher.feed(text))
            elif matcher.is_port_in_use(text):
                self._settle(error=PortInUseError(PORT_IN_USE_MESSAGE))

        text = decoder.decode(b"", final=True)
        self._log_output(name, pending_line + text)
        if name == "stdout":
            if text:
                self._offer_url(matcher.feed(text))
            self._offer_url(matcher.flush())
        elif text and matcher.is_port_in_use(text):
            self._settle(error=PortInUseError(PORT_IN_USE_MESSAGE))
        output_logger.debug(f"[{name}] closed after {chunk_count} chunks")

    def _offer_url(self, url: Optional[str]) -> None:
        if url and not self._settle(url=url):
            output_logger.debug(f"Ignoring later handshake URL: {url}")

    @staticmethod
    def _log_output(name: str, line: str) -> None:
        stripped = line.rstrip()
        if not stripped:
            return
        if name == "stderr":
            output_logger.warning(f"Inspector Error: {stripped}")
        else:
            output_logger.info(f"Inspector: {stripped}")

    async def _watch_exit(self, proc: asyncio.subprocess.Process, readers: List[asyncio.Task]) -> None:
        code = await proc.wait()
        # Children may keep the pipes open; bound the drain
        await asyncio.wait(readers, timeout=EXIT_DRAIN_TIMEOUT)
        if self._handle is not None:
            self._handle.exit_code = code
        if self._settle(error=ProcessExitedError(code)):
            logger.error(f"Inspector process exited with code {code} before printing its URL")
        else:
            logger.info(f"Inspector process exited with code {code}")

    # ---------------------------- Helpers ----------------------------
    @staticmethod
    def _children_of(pid: int) -> List[psutil.Process]:
        try:
            return psutil.Process(pid).children(recursive=True)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return []

    def _reap_children(self, children: List[psutil.Process]) -> None:
        if not children:
            return
        _, alive = psutil.wait_procs(children, timeout=self.stop_grace)
        for child in alive:
            try:
                logger.warning(f"Killing leftover inspector child {child.pid}")
                child.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        if alive:
            psutil.wait_procs(alive, timeout=self.stop_grace)
