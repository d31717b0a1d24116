"""Configuration, contracts, errors and the run orchestrator."""

from .config import HarnessSettings, RunConfiguration
from .errors import HarnessError

__all__ = ['HarnessSettings', 'RunConfiguration', 'HarnessError']
