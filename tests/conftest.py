"""Shared fixtures for the harness test suite."""

import sys
import textwrap
from pathlib import Path

import pytest

# Allow running the suite from a checkout without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mcp_visual_debugger.core.config import RunConfiguration  # noqa: E402


@pytest.fixture
def fake_inspector(tmp_path):
    """Write a Python script standing in for the inspector launcher.

    Returns a function taking the script body and returning the launcher tuple.
    """
    def _make(body: str, name: str = "fake_inspector.py"):
        script = tmp_path / name
        script.write_text(textwrap.dedent(body), encoding="utf-8")
        return (sys.executable, "-u", str(script))
    return _make


@pytest.fixture
def make_config(tmp_path):
    """Build a fast RunConfiguration (no settle delays) rooted in tmp_path."""
    def _make(**overrides):
        values = dict(
            server_command="node",
            server_args=("build/index.js",),
            headless=True,
            screenshot_dir=tmp_path / "screenshots",
            working_dir=tmp_path,
            inspector_ports=(),
            start_timeout=5.0,
            stop_grace=2.0,
            reclaim_settle_delay=0,
            form_settle_delay=0,
            connect_settle_delay=0,
            operation_settle_delay=0,
        )
        values.update(overrides)
        return RunConfiguration(**values)
    return _make


def pytest_configure(config):
    config.addinivalue_line("markers", "browser: drives a real headless Chromium through Playwright")
