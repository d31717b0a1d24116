"""
Tests for the inspector supervisor using small Python scripts as the inspector
"""

import asyncio
import time

import pytest

from mcp_visual_debugger.core.errors import (
    HarnessTimeoutError,
    InspectorTimeoutError,
    InvalidArgumentError,
    PortInUseError,
    ProcessExitedError,
    StartupError,
)
from mcp_visual_debugger.inspector.supervisor import InspectorSupervisor

URL = "http://localhost:6274/?MCP_PROXY_AUTH_TOKEN=abc123"


@pytest.fixture
def supervisor():
    return InspectorSupervisor(stop_grace=2.0)


@pytest.mark.asyncio
async def test_start_resolves_with_handshake_url(supervisor, fake_inspector, make_config):
    launcher = fake_inspector(f"""
        import sys, time
        print("Starting MCP inspector...")
        print("...{URL}...")
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher)
    try:
        url = await supervisor.start(config)
        assert url == URL
        assert supervisor.handle.handshake_url == URL
        assert supervisor.handle.running
    finally:
        await supervisor.stop()
    assert not supervisor.handle.running


@pytest.mark.asyncio
async def test_server_command_and_args_are_passed_through(supervisor, fake_inspector, make_config, tmp_path):
    launcher = fake_inspector(f"""
        import sys, time
        open("argv.txt", "w").write(" ".join(sys.argv[1:]))
        print("{URL}")
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher, server_command="node", server_args=["build/index.js"])
    try:
        await supervisor.start(config)
    finally:
        await supervisor.stop()
    # Working directory is the configured project root
    assert (tmp_path / "argv.txt").read_text() == "node build/index.js"


@pytest.mark.asyncio
async def test_only_first_handshake_url_is_used(supervisor, fake_inspector, make_config):
    second = "http://localhost:6275/?MCP_PROXY_AUTH_TOKEN=second"
    launcher = fake_inspector(f"""
        import time
        print("{URL}")
        print("{second}")
        time.sleep(30)
    """)
    try:
        url = await supervisor.start(make_config(inspector_launcher=launcher))
        await asyncio.sleep(0.3)
        assert url == URL
        assert supervisor.handshake_url == URL
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_port_in_use_fails_before_timeout(supervisor, fake_inspector, make_config):
    launcher = fake_inspector("""
        import sys, time
        sys.stderr.write("Proxy Server PORT IS IN USE at port 6277\\n")
        sys.stderr.flush()
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher, start_timeout=15.0)
    started = time.monotonic()
    try:
        with pytest.raises(PortInUseError):
            await supervisor.start(config)
    finally:
        await supervisor.stop()
    assert time.monotonic() - started < 10


@pytest.mark.asyncio
async def test_port_in_use_without_newline_fails_fast(supervisor, fake_inspector, make_config):
    launcher = fake_inspector("""
        import sys, time
        sys.stderr.write("PORT IS IN USE")
        sys.stderr.flush()
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher, start_timeout=5.0)
    started = time.monotonic()
    try:
        with pytest.raises(PortInUseError):
            await supervisor.start(config)
    finally:
        await supervisor.stop()
    assert time.monotonic() - started < 3


@pytest.mark.asyncio
async def test_port_signature_split_across_writes(supervisor, fake_inspector, make_config):
    launcher = fake_inspector("""
        import sys, time
        sys.stderr.write("Proxy Server PORT IS")
        sys.stderr.flush()
        time.sleep(0.3)
        sys.stderr.write(" IN USE at port 6277")
        sys.stderr.flush()
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher, start_timeout=5.0)
    try:
        with pytest.raises(PortInUseError):
            await supervisor.start(config)
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_url_without_newline_resolves_while_running(supervisor, fake_inspector, make_config):
    launcher = fake_inspector(f"""
        import sys, time
        sys.stdout.write("Open inspector at {URL} ")
        sys.stdout.flush()
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher, start_timeout=5.0)
    started = time.monotonic()
    try:
        assert await supervisor.start(config) == URL
        assert supervisor.handle.running
    finally:
        await supervisor.stop()
    assert time.monotonic() - started < 3


@pytest.mark.asyncio
async def test_url_ending_the_output_resolves_once_output_goes_quiet(supervisor, fake_inspector, make_config):
    launcher = fake_inspector(f"""
        import sys, time
        sys.stdout.write("Open inspector at {URL}")
        sys.stdout.flush()
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher, start_timeout=5.0)
    started = time.monotonic()
    try:
        assert await supervisor.start(config) == URL
    finally:
        await supervisor.stop()
    assert time.monotonic() - started < 3


@pytest.mark.asyncio
async def test_url_split_across_writes_is_matched_whole(supervisor, fake_inspector, make_config):
    launcher = fake_inspector("""
        import sys, time
        sys.stdout.write("Open inspector at http://localhost:6274/?MCP_PROXY_")
        sys.stdout.flush()
        time.sleep(0.3)
        sys.stdout.write("AUTH_TOKEN=abc123\\n")
        sys.stdout.flush()
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher, start_timeout=5.0)
    try:
        assert await supervisor.start(config) == URL
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_url_after_timeout_is_ignored(supervisor, fake_inspector, make_config):
    launcher = fake_inspector(f"""
        import time
        time.sleep(1.0)
        print("{URL}")
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher, start_timeout=0.5)
    try:
        with pytest.raises(InspectorTimeoutError):
            await supervisor.start(config)
        await asyncio.sleep(1.0)
        assert supervisor.handshake_url is None
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_url_racing_the_timeout_settles_exactly_once(supervisor, fake_inspector, make_config):
    launcher = fake_inspector(f"""
        import time
        time.sleep(0.5)
        print("{URL}")
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher, start_timeout=0.5)
    try:
        try:
            url = await supervisor.start(config)
        except InspectorTimeoutError:
            url = None
        await asyncio.sleep(0.5)
        # Whichever won, the handle agrees with what start() reported
        assert supervisor.handshake_url == url
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_process_exit_before_url(supervisor, fake_inspector, make_config):
    launcher = fake_inspector("""
        import sys
        print("something went wrong")
        sys.exit(3)
    """)
    try:
        with pytest.raises(ProcessExitedError) as exc_info:
            await supervisor.start(make_config(inspector_launcher=launcher))
    finally:
        await supervisor.stop()
    assert exc_info.value.code == 3
    assert isinstance(exc_info.value, StartupError)


@pytest.mark.asyncio
async def test_clean_exit_before_url_is_still_a_failure(supervisor, fake_inspector, make_config):
    launcher = fake_inspector("""
        print("nothing to see")
    """)
    try:
        with pytest.raises(ProcessExitedError) as exc_info:
            await supervisor.start(make_config(inspector_launcher=launcher))
    finally:
        await supervisor.stop()
    assert exc_info.value.code == 0


@pytest.mark.asyncio
async def test_url_printed_right_before_exit_wins(supervisor, fake_inspector, make_config):
    launcher = fake_inspector(f"""
        print("{URL}")
    """)
    try:
        assert await supervisor.start(make_config(inspector_launcher=launcher)) == URL
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_timeout_then_force_stop(supervisor, fake_inspector, make_config):
    launcher = fake_inspector("""
        import time
        time.sleep(60)
    """)
    config = make_config(inspector_launcher=launcher, start_timeout=0.5)
    with pytest.raises(InspectorTimeoutError) as exc_info:
        await supervisor.start(config)
    assert isinstance(exc_info.value, HarnessTimeoutError)
    assert isinstance(exc_info.value, TimeoutError)
    assert supervisor.handle.running

    await supervisor.stop()
    assert not supervisor.handle.running
    assert supervisor.handle.released


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_safe_before_start(supervisor, fake_inspector, make_config):
    await supervisor.stop()

    launcher = fake_inspector(f"""
        import time
        print("{URL}")
        time.sleep(30)
    """)
    await supervisor.start(make_config(inspector_launcher=launcher))
    await supervisor.stop()
    await supervisor.stop()
    assert supervisor.handle.exit_code is not None


@pytest.mark.asyncio
async def test_start_twice_is_rejected(supervisor, fake_inspector, make_config):
    launcher = fake_inspector(f"""
        import time
        print("{URL}")
        time.sleep(30)
    """)
    config = make_config(inspector_launcher=launcher)
    try:
        await supervisor.start(config)
        with pytest.raises(InvalidArgumentError):
            await supervisor.start(config)
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_missing_launcher_raises_startup_error(supervisor, make_config, tmp_path):
    config = make_config(inspector_launcher=(str(tmp_path / "no-such-npx"),))
    with pytest.raises(StartupError):
        await supervisor.start(config)
    await supervisor.stop()
