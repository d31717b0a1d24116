"""
Tests for best-effort port reclaiming
"""

import asyncio
import subprocess
import sys
from unittest.mock import patch

import psutil
import pytest

from mcp_visual_debugger.inspector.ports import PortReclaimer


@pytest.fixture
def sleeper():
    proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    yield proc
    if proc.poll() is None:
        proc.kill()
    proc.wait(timeout=5)


@pytest.mark.asyncio
async def test_reclaim_terminates_port_owner(sleeper):
    reclaimer = PortReclaimer(settle_delay=0, owner_finder=lambda ports: {sleeper.pid})

    killed = await reclaimer.reclaim({6274, 6277})

    assert killed == [sleeper.pid]
    assert sleeper.wait(timeout=5) is not None


@pytest.mark.asyncio
async def test_reclaim_with_no_owners_is_a_no_op():
    reclaimer = PortReclaimer(settle_delay=0, owner_finder=lambda ports: set())
    assert await reclaimer.reclaim([6274]) == []


@pytest.mark.asyncio
async def test_reclaim_swallows_lookup_failures():
    def broken(ports):
        raise RuntimeError("netstat exploded")

    reclaimer = PortReclaimer(settle_delay=0, owner_finder=broken)
    assert await reclaimer.reclaim([6274]) == []


@pytest.mark.asyncio
async def test_reclaim_swallows_vanished_and_denied_processes():
    reclaimer = PortReclaimer(settle_delay=0, owner_finder=lambda ports: {111, 222})

    def fake_process(pid):
        if pid == 111:
            raise psutil.NoSuchProcess(pid)
        raise psutil.AccessDenied(pid)

    with patch("mcp_visual_debugger.inspector.ports.psutil.Process", side_effect=fake_process):
        assert await reclaimer.reclaim([6274]) == []


@pytest.mark.asyncio
async def test_reclaim_never_kills_itself():
    import os
    reclaimer = PortReclaimer(settle_delay=0, owner_finder=lambda ports: {os.getpid()})
    assert await reclaimer.reclaim([6274]) == []


@pytest.mark.asyncio
async def test_reclaim_waits_for_settle_delay():
    reclaimer = PortReclaimer(settle_delay=0.2, owner_finder=lambda ports: set())
    loop = asyncio.get_running_loop()
    started = loop.time()
    await reclaimer.reclaim([6274])
    assert loop.time() - started >= 0.2
