"""MCP Visual Debugger.

Boots the MCP Inspector for a server, drives its web UI with a headless
browser and captures screenshots at each checkpoint of the run.
"""

from .core.config import HarnessSettings, RunConfiguration
from .core.contracts import ConnectionStatus, OperationStatus, RunReport, Stage
from .core.orchestrator import HarnessOrchestrator

__version__ = "0.1.0"

__all__ = [
    'HarnessOrchestrator',
    'HarnessSettings',
    'RunConfiguration',
    'RunReport',
    'Stage',
    'ConnectionStatus',
    'OperationStatus',
]
