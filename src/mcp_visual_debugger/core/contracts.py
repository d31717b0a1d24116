"""Run contracts and report schemas.

Defines the structured values a harness run produces: checkpoint records,
connection and operation outcomes, and the final run report. Keep minimal and
JSON-friendly so reports can be written next to the screenshots.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

ISO = "%Y-%m-%dT%H:%M:%S.%fZ"

SKIPPED_OPERATION_REASON = "skipped operation test"


def _now_iso() -> str:
    """Return current UTC time in ISO-8601 (with Z)."""
    return datetime.now(timezone.utc).strftime(ISO)


def make_run_id() -> str:
    """Generate a short run ID."""
    return uuid.uuid4().hex[:12]


class Stage(str, Enum):
    """Checkpoint labels."""
    LOADED = "loaded"
    CONNECTED = "connected"
    OPERATION_INVOKED = "operation_invoked"
    FAILED = "failed"


class HarnessState(str, Enum):
    """Orchestrator progression. TORN_DOWN is reachable from every state."""
    INIT = "init"
    PORTS_RECLAIMED = "ports_reclaimed"
    INSPECTOR_STARTED = "inspector_started"
    BROWSER_OPENED = "browser_opened"
    NAVIGATED = "navigated"
    CONNECTION_ATTEMPTED = "connection_attempted"
    OPERATION_ATTEMPTED = "operation_attempted"
    TORN_DOWN = "torn_down"


class ConnectionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    # No recognizable indicator on the page. Not the same thing as ERROR.
    UNKNOWN = "unknown"


class OperationStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CheckpointResult:
    """One recorded checkpoint of a run.

    Attributes:
        stage: Which checkpoint this is.
        screenshot_path: Absolute path of the PNG, or None when capture failed.
        detail: Optional human-readable note.
        timestamp: ISO timestamp of the checkpoint.
    """
    stage: Stage
    screenshot_path: Optional[Path]
    detail: Optional[str] = None
    timestamp: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "screenshot_path": str(self.screenshot_path) if self.screenshot_path else None,
            "detail": self.detail,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ConnectionOutcome:
    status: ConnectionStatus
    message: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.status is ConnectionStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "message": self.message}


@dataclass(frozen=True)
class OperationOutcome:
    status: OperationStatus
    result: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "result": self.result, "error": self.error}


@dataclass
class RunReport:
    """Final report of one harness run.

    Checkpoints are appended in order and never modified afterwards.
    """
    run_id: str = field(default_factory=make_run_id)
    started_at: str = field(default_factory=_now_iso)
    finished_at: Optional[str] = None
    harness_state: HarnessState = HarnessState.INIT
    inspector_url: Optional[str] = None
    connection: Optional[ConnectionOutcome] = None
    operation: Optional[OperationOutcome] = None
    checkpoints: List[CheckpointResult] = field(default_factory=list)
    skipped_operation: bool = False
    skip_reason: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_stage: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        """True when the run connected and the operation produced a result."""
        return (
            self.error is None
            and self.connection is not None
            and self.connection.connected
            and self.operation is not None
            and self.operation.succeeded
        )

    def add_checkpoint(self, checkpoint: CheckpointResult) -> None:
        self.checkpoints.append(checkpoint)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["harness_state"] = self.harness_state.value
        data["connection"] = self.connection.to_dict() if self.connection else None
        data["operation"] = self.operation.to_dict() if self.operation else None
        data["checkpoints"] = [c.to_dict() for c in self.checkpoints]
        data["succeeded"] = self.succeeded
        return data

    def summary(self) -> str:
        """Render the textual report printed at the end of a run."""
        lines = [
            f"Run {self.run_id}: {'SUCCESS' if self.succeeded else 'FAILED'}",
            f"  Inspector URL: {self.inspector_url or 'not discovered'}",
            f"  Connection: {self.connection.status.value if self.connection else 'not attempted'}",
        ]
        if self.skipped_operation:
            lines.append(f"  Operation: {self.skip_reason or SKIPPED_OPERATION_REASON}")
        elif self.operation:
            lines.append(f"  Operation: {self.operation.status.value}")
            if self.operation.result:
                lines.append(f"  Result: {self.operation.result}")
            if self.operation.error:
                lines.append(f"  Operation error: {self.operation.error}")
        else:
            lines.append("  Operation: not attempted")
        if self.error:
            lines.append(f"  Error ({self.error_type} during {self.error_stage}): {self.error}")
        lines.append("  Checkpoints:")
        for cp in self.checkpoints:
            path = cp.screenshot_path or "no screenshot"
            note = f" - {cp.detail}" if cp.detail else ""
            lines.append(f"    [{cp.stage.value}] {path}{note}")
        return "\n".join(lines)
