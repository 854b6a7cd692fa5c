"""Descriptor and profile loading for perfbench."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from perfbench._constants import DESCRIPTOR_EXTENSIONS
from perfbench.errors import BAD_ARGUMENTS, FILE_DOESNT_EXIST

from .schema import TestSpec

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Base exception for configuration errors."""

    code = BAD_ARGUMENTS


class ConfigFileNotFoundError(ConfigError):
    """Raised when a descriptor or profiles file is not found."""

    code = FILE_DOESNT_EXIST


class ConfigParseError(ConfigError):
    """Raised when a file cannot be parsed as YAML."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when descriptor validation fails."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return as dictionary.

    Args:
        path: Path to YAML file

    Returns:
        Dictionary containing parsed YAML

    Raises:
        ConfigFileNotFoundError: If file doesn't exist
        ConfigParseError: If YAML parsing fails or the document is not a mapping
    """
    if not path.exists():
        raise ConfigFileNotFoundError(f"File not found: {path}")

    try:
        with open(path) as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse YAML in {path}: {e}")  # noqa: B904

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigParseError(f"Expected a mapping at the top of {path}")
    return content


def load_test_spec(path: str | Path) -> TestSpec:
    """Load and validate one test descriptor.

    Raises:
        ConfigFileNotFoundError: If file doesn't exist
        ConfigParseError: If YAML parsing fails
        ConfigValidationError: If validation fails
    """
    path = Path(path)
    data = load_yaml(path)

    try:
        spec = TestSpec.model_validate(data)
    except ValidationError as e:
        errors = e.errors()
        error_messages = []
        for err in errors:
            loc = ".".join(str(x) for x in err["loc"])
            msg = err["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        raise ConfigValidationError(  # noqa: B904
            f"Test descriptor {path} is invalid:\n" + "\n".join(error_messages),
            errors=[dict(e) for e in errors],  # type: ignore[call-overload]
        )

    spec.source_path = path
    return spec


def load_test_specs(paths: list[Path]) -> list[TestSpec]:
    """Load descriptors in the given order."""
    return [load_test_spec(p) for p in paths]


def load_profiles(path: str | Path) -> dict[str, dict[str, str]]:
    """Load a shared settings profiles file.

    Expected layout::

        profiles:
          fast:
            max_threads: 8
            use_uncompressed_cache: 1

    Returns:
        Mapping of profile name to its settings (values as strings)
    """
    data = load_yaml(Path(path))
    profiles = data.get("profiles") or {}
    if not isinstance(profiles, dict):
        raise ConfigParseError(f"'profiles' in {path} must be a mapping")

    result: dict[str, dict[str, str]] = {}
    for name, settings in profiles.items():
        settings = settings or {}
        if not isinstance(settings, dict):
            raise ConfigParseError(f"Profile '{name}' in {path} must be a mapping")
        result[str(name)] = {
            str(k): "true" if v is None else str(v) for k, v in settings.items()
        }
    return result


def _is_descriptor(path: Path) -> bool:
    return path.suffix in DESCRIPTOR_EXTENSIONS


def scan_directory(directory: Path, recursive: bool = False) -> list[Path]:
    """Collect descriptor files from a directory, sorted by name.

    Sub-directories are only entered when ``recursive`` is set.
    """
    if _is_descriptor(directory):
        logger.warning("'%s' is a directory, but has a descriptor extension", directory)

    found: list[Path] = []
    for entry in sorted(directory.iterdir()):
        if entry.is_dir():
            if recursive:
                found.extend(scan_directory(entry, recursive=True))
        elif _is_descriptor(entry):
            found.append(entry)
    return found


def collect_test_files(inputs: list[Path], recursive: bool = False) -> list[Path]:
    """Expand command-line inputs into a list of descriptor files.

    With no inputs the current directory is scanned.

    Raises:
        ConfigFileNotFoundError: An input does not exist, or nothing was found
        ConfigError: An input file does not have a descriptor extension
    """
    if not inputs:
        logger.info("Trying to find test descriptors in the current folder...")
        found = scan_directory(Path("."), recursive=recursive)
        if not found:
            raise ConfigFileNotFoundError("Did not find any test descriptor files")
        logger.info("Found %d files", len(found))
        return found

    collected: list[Path] = []
    for path in inputs:
        if not path.exists():
            raise ConfigFileNotFoundError(f"File '{path}' does not exist")
        if path.is_dir():
            collected.extend(scan_directory(path, recursive=recursive))
        else:
            if not _is_descriptor(path):
                raise ConfigError(
                    f"File '{path}' does not have a {' or '.join(DESCRIPTOR_EXTENSIONS)} extension"
                )
            collected.append(path)
    return collected
