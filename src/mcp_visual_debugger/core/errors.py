"""Error taxonomy for the visual harness.

Lifecycle failures (inspector process, browser session) are raised and end a
run early. Element lookup misses inside the UI driver are reported as outcome
values instead; ElementNotFoundError exists so those misses can still be
described with a consistent type name in reports.
"""
from __future__ import annotations

from typing import Optional


class HarnessError(Exception):
    """Base class for every harness failure.

    Attributes:
        stage: Pipeline stage the failure belongs to (e.g. "inspector-start").
    """

    default_stage = "harness"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage or self.default_stage


class InvalidArgumentError(HarnessError, ValueError):
    """Caller supplied a malformed configuration."""

    default_stage = "configuration"


class StartupError(HarnessError):
    """Inspector process could not be brought up."""

    default_stage = "inspector-start"


class PortInUseError(StartupError):
    """Inspector reported that one of its fixed ports is already bound."""


class ProcessExitedError(StartupError):
    """Inspector process exited before printing its handshake URL."""

    def __init__(self, code: Optional[int], message: Optional[str] = None):
        super().__init__(message or f"Inspector process exited with code {code}")
        self.code = code


class HarnessTimeoutError(HarnessError, TimeoutError):
    """A bounded wait elapsed."""

    default_stage = "timeout"


class InspectorTimeoutError(StartupError, HarnessTimeoutError):
    """No handshake URL appeared within the start window."""


class NavigationError(HarnessError):
    """Browser failed to load a URL."""

    default_stage = "navigation"


class ReadinessTimeoutError(HarnessTimeoutError):
    """Page never satisfied its readiness predicate."""

    default_stage = "readiness"


class SessionClosedError(HarnessError):
    """Operation attempted on a browser session that is not open."""

    default_stage = "browser"


class ElementNotFoundError(HarnessError):
    """A UI element could not be located. Reported, never raised by the driver."""

    default_stage = "ui"
