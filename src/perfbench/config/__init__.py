"""perfbench configuration module."""

from .loader import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    collect_test_files,
    load_profiles,
    load_test_spec,
    load_test_specs,
    scan_directory,
)
from .schema import (
    LOOP_METRICS,
    ONCE_METRICS,
    ExecutionType,
    FlushDiskCache,
    Precondition,
    RamSize,
    StopConditionsConfig,
    StopConditionsSetConfig,
    SubstitutionConfig,
    TableExists,
    TestSpec,
)

__all__ = [
    # Descriptor models
    "TestSpec",
    "StopConditionsConfig",
    "StopConditionsSetConfig",
    "SubstitutionConfig",
    # Preconditions
    "Precondition",
    "FlushDiskCache",
    "RamSize",
    "TableExists",
    # Enums and tables
    "ExecutionType",
    "LOOP_METRICS",
    "ONCE_METRICS",
    # Loader functions
    "load_test_spec",
    "load_test_specs",
    "load_profiles",
    "collect_test_files",
    "scan_directory",
    # Exceptions
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "ConfigValidationError",
]
