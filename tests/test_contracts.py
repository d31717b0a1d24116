"""
Tests for run report contracts
"""

from pathlib import Path

import pytest

from mcp_visual_debugger.core.contracts import (
    CheckpointResult,
    ConnectionOutcome,
    ConnectionStatus,
    OperationOutcome,
    OperationStatus,
    RunReport,
    Stage,
)


def test_checkpoint_is_immutable():
    checkpoint = CheckpointResult(stage=Stage.LOADED, screenshot_path=Path("/tmp/a.png"))
    with pytest.raises(AttributeError):
        checkpoint.detail = "changed"


def test_connection_status_has_exactly_three_values():
    assert {s.value for s in ConnectionStatus} == {"success", "error", "unknown"}
    assert not ConnectionOutcome(ConnectionStatus.UNKNOWN).connected
    assert not ConnectionOutcome(ConnectionStatus.ERROR).connected
    assert ConnectionOutcome(ConnectionStatus.SUCCESS).connected


def test_report_success_requires_connection_and_result():
    report = RunReport()
    assert not report.succeeded

    report.connection = ConnectionOutcome(ConnectionStatus.SUCCESS)
    report.operation = OperationOutcome(OperationStatus.SUCCEEDED, result="Hello!")
    assert report.succeeded

    report.error = "late failure"
    assert not report.succeeded


def test_summary_lists_checkpoints_and_error():
    report = RunReport(inspector_url="http://localhost:6274/?MCP_PROXY_AUTH_TOKEN=abc123")
    report.connection = ConnectionOutcome(ConnectionStatus.ERROR, "Connection Error")
    report.add_checkpoint(CheckpointResult(Stage.LOADED, Path("/shots/01-inspector-loaded.png")))
    report.add_checkpoint(CheckpointResult(Stage.FAILED, None, detail="boom"))
    report.error, report.error_type, report.error_stage = "boom", "RuntimeError", "connection_attempted"

    text = report.summary()

    assert text.startswith(f"Run {report.run_id}: FAILED")
    assert "MCP_PROXY_AUTH_TOKEN=abc123" in text
    assert "Connection: error" in text
    assert "[loaded] /shots/01-inspector-loaded.png" in text
    assert "[failed] no screenshot - boom" in text
    assert "RuntimeError during connection_attempted" in text


def test_to_dict_is_json_friendly():
    report = RunReport()
    report.add_checkpoint(CheckpointResult(Stage.CONNECTED, Path("/shots/02.png"), detail="connection unknown"))
    data = report.to_dict()
    assert data["checkpoints"][0] == {
        "stage": "connected",
        "screenshot_path": "/shots/02.png",
        "detail": "connection unknown",
        "timestamp": report.checkpoints[0].timestamp,
    }
    assert data["connection"] is None
    assert data["succeeded"] is False
