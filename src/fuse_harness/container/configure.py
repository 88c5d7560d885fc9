"""File configuration of the container installation.

Operations are applied to files below the container home directory:
copying a file into a directory, appending properties, and replacing text.
"""

from __future__ import annotations

import shutil
import stat
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..errors import ConfigurationError
from ..shared.logging import get_logger

logger = get_logger(__name__)

ENCODING = "utf-8"
USERS_PROPERTIES = Path("etc") / "users.properties"
DEFAULT_ADMIN_CONFIG = (
    "#admin=admin,admin,manager,viewer,Monitor, Operator, Maintainer, Deployer, "
    "Auditor, Administrator, SuperUser"
)
ADMIN_CONFIG = (
    "admin=admin,admin,manager,viewer,Monitor, Operator, Maintainer, Deployer, "
    "Auditor, Administrator, SuperUser"
)


class ConfigOption(Enum):
    """Kind of file configuration operation."""

    COPY = "copy"
    APPEND = "append"
    REPLACE = "replace"


@dataclass(frozen=True)
class ConfigOperation:
    """One file configuration operation.

    `destination` is relative to the container home. Which of the other
    fields are required depends on `option`.
    """

    option: ConfigOption
    destination: str
    source: Path | None = None
    properties: Mapping[str, str] = field(default_factory=dict)
    target: str | None = None
    replacement: str | None = None


def apply_operations(operations: tuple[ConfigOperation, ...], home: Path) -> None:
    """Apply operations in order; the first failure aborts."""
    for operation in operations:
        apply_operation(operation, home)


def apply_operation(operation: ConfigOperation, home: Path) -> None:
    """Apply a single operation below `home`.

    Raises:
        ConfigurationError: On missing fields, missing files, or I/O errors.
    """
    if not operation.destination:
        raise ConfigurationError("Null destination")
    destination = home / operation.destination

    if operation.option is ConfigOption.COPY:
        copy_into(operation, destination)
    elif operation.option is ConfigOption.APPEND:
        append_properties(operation, destination)
    elif operation.option is ConfigOption.REPLACE:
        replace_in(operation, destination)
    else:
        raise ConfigurationError(f"Invalid option: {operation.option}")


def copy_into(operation: ConfigOperation, destination: Path) -> None:
    if operation.source is None:
        raise ConfigurationError("Null source file")
    if not destination.exists():
        raise ConfigurationError(f"{destination} does not exist")
    if not operation.source.exists():
        raise ConfigurationError(f"Source file {operation.source} does not exist")
    if not destination.is_dir():
        raise ConfigurationError(f"{destination} is a file")

    logger.info("config_copy", source=str(operation.source), destination=str(destination))
    try:
        shutil.copy2(operation.source, destination / operation.source.name)
    except OSError as e:
        raise ConfigurationError(f"Cannot copy {operation.source}: {e}") from e


def append_properties(operation: ConfigOperation, destination: Path) -> None:
    if not operation.properties:
        raise ConfigurationError("Null properties")
    _require_file(destination)

    logger.info("config_append", destination=str(destination), keys=list(operation.properties))
    try:
        content = destination.read_text(encoding=ENCODING)
        if content and not content.endswith("\n"):
            content += "\n"
        for key, value in operation.properties.items():
            content += f"{key} = {value}\n"
        destination.write_text(content, encoding=ENCODING)
    except OSError as e:
        raise ConfigurationError(f"Cannot append to {destination}: {e}") from e


def replace_in(operation: ConfigOperation, destination: Path) -> None:
    if operation.target is None:
        raise ConfigurationError("Null target")
    if operation.replacement is None:
        raise ConfigurationError("Null replacement")
    _require_file(destination)

    logger.info(
        "config_replace",
        destination=str(destination),
        target=operation.target,
        replacement=operation.replacement,
    )
    replace_text(destination, operation.target, operation.replacement)


def replace_text(path: Path, target: str, replacement: str) -> None:
    try:
        text = path.read_text(encoding=ENCODING).replace(target, replacement)
        path.write_text(text, encoding=ENCODING)
    except OSError as e:
        raise ConfigurationError(f"Cannot rewrite {path}: {e}") from e


def _require_file(destination: Path) -> None:
    if not destination.exists():
        raise ConfigurationError(f"{destination} does not exist")
    if destination.is_dir():
        raise ConfigurationError(f"{destination} is a directory")


# -------------------------------------------------------------------------
# Container preparation
# -------------------------------------------------------------------------


def make_scripts_executable(home: Path) -> list[Path]:
    """Add execute permission to everything under <home>/bin.

    Archives unpacked without permissions leave the start scripts unusable.
    """
    bin_dir = home / "bin"
    if not bin_dir.is_dir():
        raise ConfigurationError(f"{bin_dir} does not exist")

    changed = []
    try:
        for script in sorted(bin_dir.iterdir()):
            if not script.is_file():
                continue
            mode = script.stat().st_mode
            script.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            changed.append(script)
    except OSError as e:
        raise ConfigurationError(f"Cannot update permissions in {bin_dir}: {e}") from e

    logger.info("bin_directory_initialized", directory=str(bin_dir), scripts=len(changed))
    return changed


def enable_admin_user(home: Path) -> None:
    """Uncomment the default admin user so the management endpoint accepts it."""
    users_file = home / USERS_PROPERTIES
    if not users_file.is_file():
        raise ConfigurationError(f"{users_file} does not exist")
    logger.info("admin_user_enabled", users_file=str(users_file))
    replace_text(users_file, DEFAULT_ADMIN_CONFIG, ADMIN_CONFIG)
