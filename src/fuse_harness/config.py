"""Orchestration configuration.

Loaded from a YAML file (./fuse-harness.yaml by default) with environment
variable and CLI flag overrides. The result is an immutable
OrchestrationConfig built once before a run starts.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .container.configure import ConfigOperation, ConfigOption
from .container.deployment import DeploymentUnit, unit_from_location
from .errors import ConfigurationError

# Default values
DEFAULT_CONFIG_FILE = "fuse-harness.yaml"
DEFAULT_HOME = "target/jboss-fuse"
DEFAULT_START_TIMEOUT = 60.0
DEFAULT_MANAGEMENT_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_STOP_TIMEOUT = 60.0
DEFAULT_RUNNING_MARKER = "Running"
DEFAULT_MANAGEMENT_URL = "http://localhost:8181/hawtio/jolokia"
DEFAULT_MANAGEMENT_HOST = "localhost"
DEFAULT_MANAGEMENT_PORT = 8181
DEFAULT_CREDENTIAL = "admin"
DEFAULT_BUNDLE_MBEAN = "org.apache.karaf:type=bundles,name=root"
DEFAULT_FEATURE_MBEAN = "org.apache.karaf:type=features,name=root"

# Environment variable mappings
ENV_VARS = {
    "home": "FUSE_HARNESS_HOME",
    "start_timeout": "FUSE_HARNESS_START_TIMEOUT",
    "management_timeout": "FUSE_HARNESS_MANAGEMENT_TIMEOUT",
    "poll_interval": "FUSE_HARNESS_POLL_INTERVAL",
    "management_url": "FUSE_HARNESS_MANAGEMENT_URL",
    "management_user": "FUSE_HARNESS_MANAGEMENT_USER",
    "management_password": "FUSE_HARNESS_MANAGEMENT_PASSWORD",
}

NUMERIC_KEYS = ("start_timeout", "management_timeout", "poll_interval")


@dataclass(frozen=True)
class ContainerSettings:
    """Where the container lives and how to drive it."""

    home: Path = Path(DEFAULT_HOME)
    start_command: tuple[str, ...] = ("bin/start",)
    status_command: tuple[str, ...] = ("bin/status",)
    stop_command: tuple[str, ...] = ("bin/stop",)
    running_marker: str = DEFAULT_RUNNING_MARKER
    stop_timeout: float = DEFAULT_STOP_TIMEOUT
    enable_admin_user: bool = True

    def resolve(self, command: tuple[str, ...]) -> list[str]:
        """Resolve a relative executable against the container home."""
        if not command:
            raise ConfigurationError("Empty container command")
        executable = Path(command[0])
        if not executable.is_absolute() and len(executable.parts) > 1:
            executable = self.home / executable
        return [str(executable), *command[1:]]


@dataclass(frozen=True)
class ManagementSettings:
    """Connection details of the management endpoint."""

    url: str = DEFAULT_MANAGEMENT_URL
    host: str = DEFAULT_MANAGEMENT_HOST
    port: int = DEFAULT_MANAGEMENT_PORT
    username: str = DEFAULT_CREDENTIAL
    password: str = DEFAULT_CREDENTIAL
    request_timeout: float = 30.0
    handshake: bool = True
    bundle_mbean: str = DEFAULT_BUNDLE_MBEAN
    feature_mbean: str = DEFAULT_FEATURE_MBEAN


@dataclass(frozen=True)
class OrchestrationConfig:
    """Merged configuration for one orchestration run."""

    container: ContainerSettings = field(default_factory=ContainerSettings)
    management: ManagementSettings = field(default_factory=ManagementSettings)
    start_timeout: float = DEFAULT_START_TIMEOUT
    management_timeout: float = DEFAULT_MANAGEMENT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    units: tuple[DeploymentUnit, ...] = ()
    deploy_directories: tuple[Path, ...] = ()
    verify_units: bool = True
    file_operations: tuple[ConfigOperation, ...] = ()
    feature_repositories: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    readiness_checks: tuple[tuple[str, int], ...] = ()

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def to_dict(self) -> dict[str, Any]:
        """Plain-data view for display."""
        container = self.container
        management = self.management
        return {
            "container": {
                "home": str(container.home),
                "start_command": list(container.start_command),
                "status_command": list(container.status_command),
                "stop_command": list(container.stop_command),
                "running_marker": container.running_marker,
                "stop_timeout": container.stop_timeout,
                "enable_admin_user": container.enable_admin_user,
            },
            "management": {
                "url": management.url,
                "host": management.host,
                "port": management.port,
                "username": management.username,
                "request_timeout": management.request_timeout,
                "handshake": management.handshake,
                "bundle_mbean": management.bundle_mbean,
                "feature_mbean": management.feature_mbean,
            },
            "timeouts": {
                "start": self.start_timeout,
                "management": self.management_timeout,
                "poll_interval": self.poll_interval,
            },
            "readiness_checks": dict(self.readiness_checks),
            "deployments": [
                {"path": str(u.path), "verify": u.require_verification} for u in self.units
            ],
            "deploy_directories": [str(d) for d in self.deploy_directories],
            "configure": [
                {"option": op.option.value, "destination": op.destination}
                for op in self.file_operations
            ],
            "feature_repositories": list(self.feature_repositories),
            "features": list(self.features),
        }


def get_config_path(path: str | Path | None = None) -> Path:
    """Get the config file path.

    Returns:
        Explicit path if given, else ./fuse-harness.yaml
    """
    return Path(path) if path else Path.cwd() / DEFAULT_CONFIG_FILE


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> OrchestrationConfig:
    """Load orchestration configuration.

    Precedence (highest to lowest):
    1. CLI overrides
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        path: Config file path. Missing explicit paths are an error; a
            missing default file just means defaults.
        overrides: Values from CLI flags (home, start_timeout,
            management_timeout, poll_interval); None values are ignored.

    Returns:
        OrchestrationConfig with values and sources

    Raises:
        ConfigurationError: On unreadable or malformed configuration.
    """
    config_path = get_config_path(path)
    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path) as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    elif path:
        raise ConfigurationError(f"Config file {config_path} not found")

    sources: dict[str, str] = {}
    scalars = _file_scalars(raw, sources)
    _apply_environment(scalars, sources)
    for key, value in (overrides or {}).items():
        if value is not None:
            scalars[key] = value
            sources[key] = "cli"

    try:
        container = _parse_container(raw.get("container") or {}, scalars)
        management = _parse_management(raw.get("management") or {}, scalars)
        config = OrchestrationConfig(
            container=container,
            management=management,
            start_timeout=float(scalars.get("start_timeout", DEFAULT_START_TIMEOUT)),
            management_timeout=float(
                scalars.get("management_timeout", DEFAULT_MANAGEMENT_TIMEOUT)
            ),
            poll_interval=float(scalars.get("poll_interval", DEFAULT_POLL_INTERVAL)),
            units=tuple(_parse_unit(item) for item in raw.get("deployments") or []),
            deploy_directories=tuple(Path(d) for d in raw.get("deploy_directories") or []),
            file_operations=tuple(_parse_operation(item) for item in raw.get("configure") or []),
            feature_repositories=tuple(str(r) for r in raw.get("feature_repositories") or []),
            features=tuple(str(f) for f in raw.get("features") or []),
            readiness_checks=tuple(
                (str(name), int(port))
                for name, port in (raw.get("readiness_checks") or {}).items()
            ),
            _sources=sources,
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

    return config


def with_overrides(config: OrchestrationConfig, **changes: Any) -> OrchestrationConfig:
    """Copy of config with top-level fields replaced."""
    return replace(config, **changes)


def _file_scalars(raw: dict[str, Any], sources: dict[str, str]) -> dict[str, Any]:
    """Pull the overridable scalars out of the file layout."""
    scalars: dict[str, Any] = {}
    container = raw.get("container") or {}
    management = raw.get("management") or {}
    timeouts = raw.get("timeouts") or {}

    candidates = {
        "home": container.get("home"),
        "start_timeout": timeouts.get("start"),
        "management_timeout": timeouts.get("management"),
        "poll_interval": timeouts.get("poll_interval"),
        "management_url": management.get("url"),
        "management_user": management.get("username"),
        "management_password": management.get("password"),
    }
    for key, value in candidates.items():
        if value is not None:
            scalars[key] = value
            sources[key] = "config file"
    return scalars


def _apply_environment(scalars: dict[str, Any], sources: dict[str, str]) -> None:
    for key, env_var in ENV_VARS.items():
        value = os.environ.get(env_var)
        if not value:
            continue
        if key in NUMERIC_KEYS:
            try:
                value = float(value)
            except ValueError:
                continue
        scalars[key] = value
        sources[key] = "environment"


def _as_command(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        return tuple(value.split())
    return tuple(str(part) for part in value)


def _parse_container(raw: dict[str, Any], scalars: dict[str, Any]) -> ContainerSettings:
    defaults = ContainerSettings()
    return ContainerSettings(
        home=Path(scalars.get("home", DEFAULT_HOME)).absolute(),
        start_command=_as_command(raw.get("start_command"), defaults.start_command),
        status_command=_as_command(raw.get("status_command"), defaults.status_command),
        stop_command=_as_command(raw.get("stop_command"), defaults.stop_command),
        running_marker=str(raw.get("running_marker", DEFAULT_RUNNING_MARKER)),
        stop_timeout=float(raw.get("stop_timeout", DEFAULT_STOP_TIMEOUT)),
        enable_admin_user=bool(raw.get("enable_admin_user", True)),
    )


def _parse_management(raw: dict[str, Any], scalars: dict[str, Any]) -> ManagementSettings:
    return ManagementSettings(
        url=str(scalars.get("management_url", DEFAULT_MANAGEMENT_URL)),
        host=str(raw.get("host", DEFAULT_MANAGEMENT_HOST)),
        port=int(raw.get("port", DEFAULT_MANAGEMENT_PORT)),
        username=str(scalars.get("management_user", DEFAULT_CREDENTIAL)),
        password=str(scalars.get("management_password", DEFAULT_CREDENTIAL)),
        request_timeout=float(raw.get("request_timeout", 30.0)),
        handshake=bool(raw.get("handshake", True)),
        bundle_mbean=str(raw.get("bundle_mbean", DEFAULT_BUNDLE_MBEAN)),
        feature_mbean=str(raw.get("feature_mbean", DEFAULT_FEATURE_MBEAN)),
    )


def _parse_unit(item: Any) -> DeploymentUnit:
    if isinstance(item, str):
        return unit_from_location(item)
    if "path" not in item:
        raise ConfigurationError("Deployment entry without path")
    return unit_from_location(str(item["path"]), bool(item.get("verify", True)))


def _parse_operation(item: dict[str, Any]) -> ConfigOperation:
    option = item.get("option")
    if option is None:
        raise ConfigurationError("Null option")
    try:
        parsed = ConfigOption(str(option).lower())
    except ValueError as e:
        raise ConfigurationError(f"Invalid option: {option}") from e

    source = item.get("source")
    properties = item.get("properties") or {}
    return ConfigOperation(
        option=parsed,
        destination=str(item.get("destination") or ""),
        source=Path(source) if source else None,
        properties={str(k): str(v) for k, v in properties.items()},
        target=item.get("target"),
        replacement=item.get("replacement"),
    )
