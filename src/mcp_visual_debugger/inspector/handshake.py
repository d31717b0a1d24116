"""Handshake URL extraction from inspector output.

The inspector prints a one-time, token-bearing URL when it is ready. Its output
is free-form text, so everything that depends on the exact wording lives here
behind HandshakeMatcher; a new inspector release only needs a new matcher.
"""
from __future__ import annotations

import re
from typing import Optional, Pattern

TOKEN_PARAM = "MCP_PROXY_AUTH_TOKEN"

HANDSHAKE_PATTERN = re.compile(
    r"http://localhost:\d+/\?" + re.escape(TOKEN_PARAM) + r"=\w+"
)

PORT_IN_USE_PATTERN = re.compile(r"PORT IS IN USE")


class HandshakeMatcher:
    """Recognises the handshake URL and the port-conflict signature.

    Output arrives in arbitrary chunks, so the matcher keeps the unterminated
    tail of the previous chunk and searches it together with the next one.
    """

    def __init__(self, url_pattern: Pattern[str] = HANDSHAKE_PATTERN,
                 port_in_use_pattern: Pattern[str] = PORT_IN_USE_PATTERN,
                 max_tail: int = 4096):
        self.url_pattern = url_pattern
        self.port_in_use_pattern = port_in_use_pattern
        self.max_tail = max_tail
        self._tail = ""

    def feed(self, chunk: str) -> Optional[str]:
        """Return the first handshake URL completed by this chunk, if any."""
        text = self._tail + chunk
        match = self.url_pattern.search(text)
        # A URL touching the end of the buffer may still be growing (token split across chunks)
        if match and match.end() < len(text):
            self._tail = ""
            return match.group(0)
        self._keep_tail(text)
        return None

    @property
    def pending(self) -> bool:
        """True when the kept tail already holds a complete-looking URL."""
        return bool(self.url_pattern.search(self._tail))

    def flush(self) -> Optional[str]:
        """Match whatever is left once the stream has ended or gone quiet."""
        text, self._tail = self._tail, ""
        match = self.url_pattern.search(text)
        return match.group(0) if match else None

    def is_port_in_use(self, chunk: str) -> bool:
        """Check a chunk for the port-conflict signature, including one split across chunks."""
        text = self._tail + chunk
        if self.port_in_use_pattern.search(text):
            self._tail = ""
            return True
        self._keep_tail(text)
        return False

    def _keep_tail(self, text: str) -> None:
        last_newline = text.rfind("\n")
        self._tail = text[last_newline + 1:][-self.max_tail:]


def extract_handshake_url(text: str, pattern: Pattern[str] = HANDSHAKE_PATTERN) -> Optional[str]:
    """Return the first handshake URL found in text, or None."""
    match = pattern.search(text)
    return match.group(0) if match else None
