"""Deployment units and the sources they are collected from."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..errors import ConfigurationError
from ..shared.logging import get_logger

logger = get_logger(__name__)

ARTIFACT_EXTENSION = ".jar"


def has_scheme(location: str) -> bool:
    """True for artifact URLs such as `mvn:g/a/v` or `file:///x.jar`."""
    return ":" in location.split("/", 1)[0]


@dataclass(frozen=True)
class DeploymentUnit:
    """One artifact to install into the container.

    `path` is a local file, or a string when the artifact is given as a URL
    the container resolves itself.
    """

    path: Path | str
    require_verification: bool = True

    @property
    def location(self) -> str:
        """What the management endpoint is asked to install."""
        if isinstance(self.path, str):
            return self.path
        return str(self.path.absolute())


def unit_from_location(location: str, require_verification: bool = True) -> DeploymentUnit:
    """Build a unit from a config value, keeping URLs verbatim."""
    path: Path | str = location if has_scheme(location) else Path(location)
    return DeploymentUnit(path=path, require_verification=require_verification)


def discover_artifacts(directory: Path) -> list[DeploymentUnit]:
    """Collect every jar in a directory, sorted by file name.

    Args:
        directory: Directory to scan (not recursive).

    Returns:
        Verified DeploymentUnits, one per artifact.

    Raises:
        ConfigurationError: If the directory does not exist.
    """
    if not directory.is_dir():
        raise ConfigurationError(f"{directory} is not a directory")

    artifacts = sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() == ARTIFACT_EXTENSION
    )
    logger.debug("artifacts_discovered", directory=str(directory), count=len(artifacts))
    return [DeploymentUnit(path=p) for p in artifacts]


def collect_units(
    directories: list[Path] | tuple[Path, ...],
    explicit: list[DeploymentUnit] | tuple[DeploymentUnit, ...],
) -> tuple[DeploymentUnit, ...]:
    """Build the ordered unit list: directory artifacts first, then explicit ones."""
    units: list[DeploymentUnit] = []
    for directory in directories:
        units.extend(discover_artifacts(directory))
    units.extend(explicit)
    return tuple(units)
