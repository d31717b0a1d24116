import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import yaml
from dotenv import load_dotenv

from .errors import InvalidArgumentError

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent

INSPECTOR_UI_PORT = 6274
INSPECTOR_PROXY_PORT = 6277


def _env_bool(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class RunConfiguration:
    """Immutable inputs of one harness run.

    Timeouts and delays are in seconds.
    """

    server_command: str
    server_args: Tuple[str, ...] = ()
    headless: bool = False
    screenshot_dir: Path = PROJECT_ROOT / "screenshots"

    # Inspector process
    inspector_launcher: Tuple[str, ...] = ("npx", "@modelcontextprotocol/inspector")
    inspector_ports: Tuple[int, ...] = (INSPECTOR_UI_PORT, INSPECTOR_PROXY_PORT)
    working_dir: Path = PROJECT_ROOT
    start_timeout: float = 15.0
    stop_grace: float = 5.0
    reclaim_settle_delay: float = 1.0

    # Browser
    viewport_width: int = 1200
    viewport_height: int = 800
    launch_timeout: float = 30.0
    navigation_timeout: float = 30.0
    readiness_timeout: float = 10.0
    screenshot_timeout: float = 30.0

    # Inspector UI workflow
    form_settle_delay: float = 1.0
    connect_settle_delay: float = 3.0
    operation_settle_delay: float = 2.0
    operation_name: str = "say_hello"
    operation_params: Tuple[Tuple[str, str], ...] = (("name", "Playwright"),)

    def __post_init__(self):
        if not isinstance(self.server_command, str) or not self.server_command.strip():
            raise InvalidArgumentError("server_command must be a non-empty string")
        # Accept any sequence for args/params but store tuples so the config stays hashable
        if isinstance(self.server_args, str):
            raise InvalidArgumentError("server_args must be a sequence of strings, not a string")
        args = tuple(self.server_args)
        if not all(isinstance(a, str) for a in args):
            raise InvalidArgumentError("server_args must only contain strings")
        object.__setattr__(self, "server_args", args)
        object.__setattr__(self, "screenshot_dir", Path(self.screenshot_dir))
        object.__setattr__(self, "working_dir", Path(self.working_dir))
        object.__setattr__(self, "inspector_launcher", tuple(self.inspector_launcher))
        try:
            ports = tuple(int(p) for p in self.inspector_ports)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(f"inspector_ports must be integers: {self.inspector_ports!r}") from e
        object.__setattr__(self, "inspector_ports", ports)
        params = self.operation_params
        if isinstance(params, dict):
            params = params.items()
        object.__setattr__(self, "operation_params", tuple((str(k), str(v)) for k, v in params))

        for name in (
            "start_timeout", "stop_grace", "launch_timeout", "navigation_timeout",
            "readiness_timeout", "screenshot_timeout",
        ):
            if self._seconds(name) <= 0:
                raise InvalidArgumentError(f"{name} must be positive")
        for name in ("reclaim_settle_delay", "form_settle_delay", "connect_settle_delay", "operation_settle_delay"):
            if self._seconds(name) < 0:
                raise InvalidArgumentError(f"{name} must not be negative")

    def _seconds(self, name: str) -> float:
        """Coerce a duration field to float in place."""
        value = getattr(self, name)
        try:
            seconds = float(value)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(f"{name} must be a number of seconds, got {value!r}") from e
        object.__setattr__(self, name, seconds)
        return seconds

    @property
    def inspector_command(self) -> Tuple[str, ...]:
        """Full argv used to launch the inspector."""
        return self.inspector_launcher + (self.server_command,) + self.server_args

    @property
    def params(self) -> Dict[str, str]:
        return dict(self.operation_params)


@dataclass
class HarnessSettings:
    """User-editable settings for the harness (config.yaml + environment)."""

    # Paths
    base_dir: Path = PROJECT_ROOT
    screenshot_dir: Path = None
    logs_dir: Path = None

    # Server under test
    server_command: str = "node"
    server_args: list = None
    headless: bool = False

    # Inspector
    inspector_launcher: list = None
    inspector_ports: list = None
    start_timeout: float = 15.0

    # Browser
    navigation_timeout: float = 30.0
    readiness_timeout: float = 10.0

    # Workflow
    connect_settle_delay: float = 3.0
    operation_settle_delay: float = 2.0
    operation_name: str = "say_hello"
    operation_params: dict = field(default_factory=lambda: {"name": "Playwright"})

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        self.base_dir = Path(self.base_dir)
        if self.screenshot_dir is None:
            self.screenshot_dir = self.base_dir / "screenshots"
        if self.logs_dir is None:
            self.logs_dir = self.base_dir / "data" / "logs"
        if self.server_args is None:
            self.server_args = ["build/index.js"]
        if self.inspector_launcher is None:
            self.inspector_launcher = ["npx", "@modelcontextprotocol/inspector"]
        if self.inspector_ports is None:
            self.inspector_ports = [INSPECTOR_UI_PORT, INSPECTOR_PROXY_PORT]

        # Environment wins over values read from YAML
        command = os.getenv("MCP_SERVER_COMMAND")
        if command:
            self.server_command = command
        args = os.getenv("MCP_SERVER_ARGS")
        if args is not None:
            self.server_args = shlex.split(args)
        headless = _env_bool("MCP_HEADLESS")
        if headless is not None:
            self.headless = headless
        shot_dir = os.getenv("MCP_SCREENSHOT_DIR")
        if shot_dir:
            self.screenshot_dir = Path(shot_dir)
        timeout = os.getenv("MCP_INSPECTOR_TIMEOUT")
        if timeout:
            try:
                self.start_timeout = float(timeout)
            except ValueError:
                raise InvalidArgumentError(f"MCP_INSPECTOR_TIMEOUT is not a number: {timeout!r}")
        self.log_level = (os.getenv("LOG_LEVEL") or self.log_level).upper()

    @classmethod
    def from_yaml(cls, path: Path) -> "HarnessSettings":
        """Load settings from a YAML file
        Note: Coerce known path-like fields to Path for consistency.
        """
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise InvalidArgumentError(f"{path} must contain a mapping")

        path_fields = ['base_dir', 'screenshot_dir', 'logs_dir']
        for name in path_fields:
            if name in data and data[name] is not None:
                data[name] = Path(data[name])

        try:
            return cls(**data)
        except TypeError as e:
            raise InvalidArgumentError(f"Invalid settings in {path}: {e}")

    def to_yaml(self, path: Path):
        """Save settings to a YAML file"""
        data = {
            k: str(v) if isinstance(v, Path) else v
            for k, v in self.__dict__.items()
        }
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False)

    def to_run_configuration(self, headless: Optional[bool] = None, **overrides: Any) -> RunConfiguration:
        """Freeze these settings into the configuration of one run."""
        values: Dict[str, Any] = dict(
            server_command=self.server_command,
            server_args=tuple(self.server_args),
            headless=self.headless if headless is None else headless,
            screenshot_dir=self.screenshot_dir,
            inspector_launcher=tuple(self.inspector_launcher),
            inspector_ports=tuple(self.inspector_ports),
            working_dir=self.base_dir,
            start_timeout=self.start_timeout,
            navigation_timeout=self.navigation_timeout,
            readiness_timeout=self.readiness_timeout,
            connect_settle_delay=self.connect_settle_delay,
            operation_settle_delay=self.operation_settle_delay,
            operation_name=self.operation_name,
            operation_params=self.operation_params,
        )
        values.update(overrides)
        return RunConfiguration(**values)
