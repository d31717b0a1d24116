"""
Tests for handshake URL extraction from inspector output
"""

from mcp_visual_debugger.inspector.handshake import HandshakeMatcher, extract_handshake_url

URL = "http://localhost:6274/?MCP_PROXY_AUTH_TOKEN=abc123"


def test_extracts_url_from_banner_line():
    matcher = HandshakeMatcher()
    line = f"🔍 MCP Inspector is up and running at {URL} 🚀\n"
    assert matcher.feed(line) == URL


def test_first_match_in_a_chunk_wins():
    other = "http://localhost:6275/?MCP_PROXY_AUTH_TOKEN=zzz999"
    assert extract_handshake_url(f"{URL} then {other}") == URL


def test_token_split_across_chunks():
    matcher = HandshakeMatcher()
    assert matcher.feed("Open http://localhost:6274/?MCP_PROXY_AUTH_TOKEN=abc") is None
    assert matcher.feed("123\n") == URL


def test_url_at_end_of_stream_is_found_on_flush():
    matcher = HandshakeMatcher()
    assert matcher.feed(f"ready at {URL}") is None
    assert matcher.flush() == URL
    assert matcher.flush() is None


def test_unrelated_urls_are_ignored():
    matcher = HandshakeMatcher()
    assert matcher.feed("Proxy server listening on http://localhost:6277\n") is None
    assert matcher.feed("http://localhost:6274/?token=abc\n") is None


def test_port_in_use_signature():
    matcher = HandshakeMatcher()
    assert matcher.is_port_in_use("❌  Proxy Server PORT IS IN USE at port 6277 ❌\n")
    assert not matcher.is_port_in_use("Starting MCP inspector...\n")


def test_port_signature_split_across_chunks():
    matcher = HandshakeMatcher()
    assert not matcher.is_port_in_use("Proxy Server PORT IS")
    assert matcher.is_port_in_use(" IN USE at port 6277")


def test_pending_reports_url_waiting_at_end_of_buffer():
    matcher = HandshakeMatcher()
    assert matcher.feed(f"ready at {URL}") is None
    assert matcher.pending
    assert matcher.flush() == URL
    assert not matcher.pending
