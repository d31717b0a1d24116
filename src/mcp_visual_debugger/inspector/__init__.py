"""Inspector process lifecycle: port reclaiming, spawning, handshake discovery."""

from .handshake import HandshakeMatcher, extract_handshake_url
from .ports import PortReclaimer
from .supervisor import InspectorHandle, InspectorSupervisor

__all__ = [
    'HandshakeMatcher',
    'extract_handshake_url',
    'PortReclaimer',
    'InspectorHandle',
    'InspectorSupervisor',
]
