"""Harness orchestrator: one full visual verification run.

Sequences port reclaiming, inspector start, browser session, connection and
the demo tool call, taking a screenshot checkpoint after each stage. The
inspector and the browser are registered on an AsyncExitStack before they are
started, so both are released on every exit path, browser first. Teardown
errors are logged and dropped; they never replace the error of the run.
"""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import AsyncExitStack
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import aiofiles

from ..browser.inspector_driver import InspectorUIDriver
from ..browser.session import BrowserSession
from ..core.config import RunConfiguration
from ..core.contracts import (
    ISO,
    SKIPPED_OPERATION_REASON,
    CheckpointResult,
    HarnessState,
    RunReport,
    Stage,
)
from ..core.errors import SessionClosedError
from ..inspector.ports import PortReclaimer
from ..inspector.supervisor import InspectorSupervisor

logger = logging.getLogger(__name__)

TEARDOWN_TIMEOUT = 30.0
REPORT_FILENAME = "run-report.json"


def _default_reclaimer(config: RunConfiguration) -> PortReclaimer:
    return PortReclaimer(settle_delay=config.reclaim_settle_delay)


def _default_supervisor(config: RunConfiguration) -> InspectorSupervisor:
    return InspectorSupervisor(stop_grace=config.stop_grace)


def _default_session(config: RunConfiguration) -> BrowserSession:
    return BrowserSession(
        config.screenshot_dir,
        viewport=(config.viewport_width, config.viewport_height),
        launch_timeout=config.launch_timeout,
        screenshot_timeout=config.screenshot_timeout,
    )


def _default_driver(config: RunConfiguration) -> InspectorUIDriver:
    return InspectorUIDriver(
        form_settle_delay=config.form_settle_delay,
        connect_settle_delay=config.connect_settle_delay,
        operation_settle_delay=config.operation_settle_delay,
    )


class HarnessOrchestrator:
    """Runs the fixed inspector workflow and returns a RunReport.

    Collaborator factories are injectable; each receives the run configuration.
    """

    def __init__(self,
                 reclaimer_factory: Callable[[RunConfiguration], Any] = _default_reclaimer,
                 supervisor_factory: Callable[[RunConfiguration], Any] = _default_supervisor,
                 session_factory: Callable[[RunConfiguration], Any] = _default_session,
                 driver_factory: Callable[[RunConfiguration], Any] = _default_driver,
                 write_report: bool = True):
        self.reclaimer_factory = reclaimer_factory
        self.supervisor_factory = supervisor_factory
        self.session_factory = session_factory
        self.driver_factory = driver_factory
        self.write_report = write_report

    async def run(self, config: RunConfiguration) -> RunReport:
        report = RunReport()
        run_logger = logging.getLogger(f"harness.run.{report.run_id}")
        run_logger.info(f"Starting MCP Visual Debugger run {report.run_id}")
        run_logger.info(f"Server Command: {config.server_command} {' '.join(config.server_args)}")

        supervisor = self.supervisor_factory(config)
        session = self.session_factory(config)

        try:
            async with AsyncExitStack() as stack:
                # LIFO: the browser closes before the inspector stops
                stack.push_async_callback(self._release, "inspector", supervisor.stop)
                stack.push_async_callback(self._release, "browser", session.close)
                try:
                    await self._pipeline(config, report, supervisor, session)
                except Exception as e:
                    await self._record_failure(report, session, e)
        finally:
            report.harness_state = HarnessState.TORN_DOWN
            report.finished_at = datetime.now(timezone.utc).strftime(ISO)
            run_logger.info("Cleanup complete")

        if self.write_report:
            await self._write_report(report, config.screenshot_dir)
        run_logger.info("\n" + report.summary())
        return report

    async def _pipeline(self, config: RunConfiguration, report: RunReport,
                        supervisor: Any, session: Any) -> None:
        reclaimer = self.reclaimer_factory(config)
        await reclaimer.reclaim(config.inspector_ports)
        self._advance(report, HarnessState.PORTS_RECLAIMED)

        report.inspector_url = await supervisor.start(config)
        self._advance(report, HarnessState.INSPECTOR_STARTED)

        await session.open(config.headless)
        self._advance(report, HarnessState.BROWSER_OPENED)

        driver = self.driver_factory(config)
        await session.navigate(report.inspector_url, timeout=config.navigation_timeout)
        await driver.wait_until_ready(session, timeout=config.readiness_timeout)
        self._advance(report, HarnessState.NAVIGATED)
        await self._checkpoint(report, session, Stage.LOADED, "01-inspector-loaded")

        report.connection = await driver.connect(session, config.server_command, config.server_args)
        self._advance(report, HarnessState.CONNECTION_ATTEMPTED)
        await self._checkpoint(report, session, Stage.CONNECTED, "02-after-connection",
                               detail=f"connection {report.connection.status.value}")

        if not report.connection.connected:
            report.skipped_operation = True
            report.skip_reason = SKIPPED_OPERATION_REASON
            logger.info(f"Connection {report.connection.status.value}, skipping tool test")
            return

        report.operation = await driver.invoke_demo_operation(
            session, config.operation_name, config.params
        )
        self._advance(report, HarnessState.OPERATION_ATTEMPTED)
        await self._checkpoint(report, session, Stage.OPERATION_INVOKED, "03-tool-execution",
                               detail=f"{config.operation_name} {report.operation.status.value}")

    @staticmethod
    def _advance(report: RunReport, state: HarnessState) -> None:
        logger.debug(f"{report.harness_state.value} -> {state.value}")
        report.harness_state = state

    async def _checkpoint(self, report: RunReport, session: Any, stage: Stage, name: str,
                          detail: Optional[str] = None) -> CheckpointResult:
        """Screenshot and record a checkpoint. A failed capture is recorded, not raised."""
        try:
            path = await session.screenshot(name)
        except SessionClosedError:
            raise
        except Exception as e:
            logger.error(f"Screenshot {name} failed: {e}")
            path = None
            detail = f"{detail}; screenshot failed: {e}" if detail else f"screenshot failed: {e}"
        checkpoint = CheckpointResult(stage=stage, screenshot_path=path, detail=detail)
        report.add_checkpoint(checkpoint)
        return checkpoint

    async def _record_failure(self, report: RunReport, session: Any, error: Exception) -> None:
        report.error = str(error) or type(error).__name__
        report.error_type = type(error).__name__
        report.error_stage = getattr(error, "stage", None) or report.harness_state.value
        logger.error(f"Test failed during {report.error_stage}: {report.error_type}: {report.error}")

        if getattr(session, "is_open", False):
            try:
                await self._checkpoint(report, session, Stage.FAILED, "error-state", detail=report.error)
                return
            except SessionClosedError:
                logger.warning("Browser closed before the error state could be captured")
        report.add_checkpoint(CheckpointResult(
            stage=Stage.FAILED, screenshot_path=None,
            detail=f"{report.error} (no browser page to capture)",
        ))

    @staticmethod
    async def _release(name: str, closer: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.wait_for(closer(), timeout=TEARDOWN_TIMEOUT)
        except Exception as e:
            logger.error(f"Teardown of {name} failed: {type(e).__name__}: {e}")

    @staticmethod
    async def _write_report(report: RunReport, directory: Path) -> Optional[Path]:
        path = Path(directory) / REPORT_FILENAME
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(report.to_dict(), indent=2, default=str))
        except OSError as e:
            logger.error(f"Could not write run report to {path}: {e}")
            return None
        logger.info(f"Run report written: {path}")
        return path
