"""Fixed interaction sequence against the MCP Inspector web UI.

The inspector is third-party, so every selector is a heuristic and lives in
InspectorSelectors; an adapter for another inspector version only has to
supply different selectors. Lookups that miss are reported through the
returned outcome. Only session-level failures (closed page, navigation or
readiness timeouts) are raised.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from ..core.contracts import (
    ConnectionOutcome,
    ConnectionStatus,
    OperationOutcome,
    OperationStatus,
)
from ..core.errors import ElementNotFoundError, SessionClosedError
from .session import BrowserSession

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    NOT_CONNECTED = "not_connected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CONNECT_FAILED = "connect_failed"
    CONNECT_UNKNOWN = "connect_unknown"


class OperationState(str, Enum):
    IDLE = "operation_idle"
    RUNNING = "operation_running"
    SUCCEEDED = "operation_succeeded"
    FAILED = "operation_failed"
    NOT_FOUND = "operation_not_found"


_CONNECTION_STATES = {
    ConnectionStatus.SUCCESS: ConnectionState.CONNECTED,
    ConnectionStatus.ERROR: ConnectionState.CONNECT_FAILED,
    ConnectionStatus.UNKNOWN: ConnectionState.CONNECT_UNKNOWN,
}

_OPERATION_STATES = {
    OperationStatus.SUCCEEDED: OperationState.SUCCEEDED,
    OperationStatus.FAILED: OperationState.FAILED,
    OperationStatus.NOT_FOUND: OperationState.NOT_FOUND,
}


@dataclass(frozen=True)
class InspectorSelectors:
    """Selector strategy for the current inspector UI."""
    command_input: str = 'input[placeholder*="command" i], input[type="text"]'
    args_input: str = 'input[placeholder*="Arguments" i], textarea[placeholder*="space-separated" i]'
    connect_button: str = 'button:has-text("Connect")'
    error_indicator: str = '.connection-error, .error, [class*="error"]'
    success_indicator: str = '.connected, .success, [class*="success"]'
    tools_tab: str = 'a[href*="tools"], [role="tab"]:has-text("Tools"), button:has-text("Tools")'
    list_tools_button: str = 'button:has-text("List Tools")'
    execute_button: str = 'button:has-text("Run Tool"), button:has-text("Execute"), button:has-text("Run")'
    param_input: str = 'input[name="{name}"], textarea[name="{name}"], input[placeholder*="{name}" i]'
    result: str = '.result, .output, [class*="result"]'

    # Readiness: the connection form has rendered once a Connect button exists
    ready_predicate: str = (
        "() => Array.from(document.querySelectorAll('button'))"
        ".some(button => (button.textContent || '').includes('Connect'))"
    )


CONNECTION_STATUS_SCRIPT = """
(selectors) => {
    const errorElement = document.querySelector(selectors.error);
    const successElement = document.querySelector(selectors.success);
    if (errorElement) {
        return { status: 'error', message: (errorElement.textContent || '').trim() };
    }
    if (successElement) {
        return { status: 'success', message: (successElement.textContent || '').trim() };
    }
    return { status: 'unknown', message: 'No clear status indicator found' };
}
"""

PAGE_CONTAINS_SCRIPT = """
(text) => !!document.body && (document.body.innerText || '').includes(text)
"""

RESULT_TEXT_SCRIPT = """
(selector) => {
    const resultElement = document.querySelector(selector);
    return resultElement ? (resultElement.textContent || '').trim() : null;
}
"""


class InspectorUIDriver:
    """Drives the inspector page: configure, connect, invoke one tool."""

    def __init__(self, selectors: Optional[InspectorSelectors] = None,
                 form_settle_delay: float = 1.0,
                 connect_settle_delay: float = 3.0,
                 operation_settle_delay: float = 2.0,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.selectors = selectors or InspectorSelectors()
        self.form_settle_delay = form_settle_delay
        self.connect_settle_delay = connect_settle_delay
        self.operation_settle_delay = operation_settle_delay
        self._sleep = sleep
        self.connection_state = ConnectionState.NOT_CONNECTED
        self.operation_state = OperationState.IDLE

    async def wait_until_ready(self, session: BrowserSession, timeout: float = 10.0) -> None:
        """Block until the connection form has rendered (ReadinessTimeoutError otherwise)."""
        await session.wait_for_condition(self.selectors.ready_predicate, timeout=timeout)
        logger.info("MCP Inspector loaded successfully")

    # ---------------------------- Connection ----------------------------
    async def connect(self, session: BrowserSession, command: str,
                      args: Sequence[str] = ()) -> ConnectionOutcome:
        """Fill the connection form, press Connect and classify the result."""
        self.connection_state = ConnectionState.CONNECTING
        logger.info("Setting up MCP server connection...")
        outcome = await self._connect(session, command, args)
        self.connection_state = _CONNECTION_STATES[outcome.status]
        logger.info(f"Connection Status: {outcome.status.value} ({outcome.message})")
        return outcome

    async def _connect(self, session: BrowserSession, command: str,
                       args: Sequence[str]) -> ConnectionOutcome:
        if await self._fill(session, self.selectors.command_input, command):
            logger.info("Command field updated")
        else:
            logger.warning("Command input not found, keeping the inspector default")

        arg_text = " ".join(args)
        if await self._fill(session, self.selectors.args_input, arg_text):
            logger.info("Arguments field updated")
        else:
            logger.warning("Arguments input not found, keeping the inspector default")

        await self._sleep(self.form_settle_delay)

        connect_button = await self._query(session, self.selectors.connect_button)
        if connect_button is None:
            logger.error("Connect button not found")
            return ConnectionOutcome(ConnectionStatus.ERROR, self._not_found("Connect button"))

        try:
            await connect_button.click()
        except PlaywrightError as e:
            self._raise_if_closed(session, e)
            return ConnectionOutcome(ConnectionStatus.ERROR, f"Connect click failed: {e}")
        logger.info("Connect button clicked")

        await self._sleep(self.connect_settle_delay)
        status = await session.evaluate(CONNECTION_STATUS_SCRIPT, {
            "error": self.selectors.error_indicator,
            "success": self.selectors.success_indicator,
        })
        return self._parse_connection_status(status)

    @staticmethod
    def _parse_connection_status(raw: Any) -> ConnectionOutcome:
        if not isinstance(raw, Mapping):
            return ConnectionOutcome(ConnectionStatus.UNKNOWN, "No clear status indicator found")
        try:
            status = ConnectionStatus(raw.get("status"))
        except ValueError:
            status = ConnectionStatus.UNKNOWN
        return ConnectionOutcome(status, raw.get("message"))

    # ---------------------------- Operation ----------------------------
    async def invoke_demo_operation(self, session: BrowserSession, operation_name: str,
                                    params: Optional[Mapping[str, str]] = None) -> OperationOutcome:
        """Run one tool through the inspector's tools view and read its result."""
        self.operation_state = OperationState.RUNNING
        logger.info(f"Testing {operation_name} tool...")
        outcome = await self._invoke(session, operation_name, dict(params or {}))
        self.operation_state = _OPERATION_STATES[outcome.status]
        if outcome.succeeded:
            logger.info(f"Tool execution result: {outcome.result}")
        else:
            logger.warning(f"Tool test {outcome.status.value}: {outcome.error}")
        return outcome

    async def _invoke(self, session: BrowserSession, operation_name: str,
                      params: Dict[str, str]) -> OperationOutcome:
        if await self._click_if_present(session, self.selectors.tools_tab):
            await self._sleep(self.form_settle_delay)
        else:
            logger.info("Tools tab not found, assuming tools view is already shown")

        if await self._click_if_present(session, self.selectors.list_tools_button):
            await self._sleep(self.form_settle_delay)

        if not await session.evaluate(PAGE_CONTAINS_SCRIPT, operation_name):
            return OperationOutcome(OperationStatus.NOT_FOUND, error=self._not_found(f"{operation_name} tool"))
        logger.info(f"{operation_name} tool found")

        # Selecting the entry opens its parameter form; not fatal if it is already open
        if await self._click_if_present(session, f'text="{operation_name}"'):
            await self._sleep(self.form_settle_delay)

        execute_button = await self._query(session, self.selectors.execute_button)
        if execute_button is None:
            return OperationOutcome(OperationStatus.NOT_FOUND, error=self._not_found("Execute button"))

        for name, value in list(params.items())[:1]:
            if await self._fill(session, self.selectors.param_input.format(name=name), value):
                logger.info(f"Parameter {name!r} set")
            else:
                logger.info(f"Parameter field {name!r} not found, running with defaults")

        try:
            await execute_button.click()
        except PlaywrightError as e:
            self._raise_if_closed(session, e)
            return OperationOutcome(OperationStatus.FAILED, error=f"Execute click failed: {e}")

        await self._sleep(self.operation_settle_delay)
        result = await session.evaluate(RESULT_TEXT_SCRIPT, self.selectors.result)
        if result is None:
            return OperationOutcome(OperationStatus.FAILED, error="No result found")
        return OperationOutcome(OperationStatus.SUCCEEDED, result=result)

    # ---------------------------- Helpers ----------------------------
    async def _query(self, session: BrowserSession, selector: str):
        try:
            return await session.page.query_selector(selector)
        except PlaywrightError as e:
            self._raise_if_closed(session, e)
            logger.debug(f"Selector {selector!r} failed: {e}")
            return None

    async def _fill(self, session: BrowserSession, selector: str, value: str) -> bool:
        element = await self._query(session, selector)
        if element is None:
            return False
        try:
            await element.fill(value)
        except PlaywrightError as e:
            self._raise_if_closed(session, e)
            logger.warning(f"Could not fill {selector!r}: {e}")
            return False
        return True

    async def _click_if_present(self, session: BrowserSession, selector: str) -> bool:
        element = await self._query(session, selector)
        if element is None:
            return False
        try:
            await element.click()
        except PlaywrightError as e:
            self._raise_if_closed(session, e)
            logger.debug(f"Click on {selector!r} failed: {e}")
            return False
        return True

    @staticmethod
    def _raise_if_closed(session: BrowserSession, error: Exception) -> None:
        if not session.is_open:
            raise SessionClosedError(f"Browser session closed: {error}") from error

    @staticmethod
    def _not_found(what: str) -> str:
        missing = ElementNotFoundError(f"{what} not found")
        logger.warning(str(missing))
        return f"{type(missing).__name__}: {missing}"
