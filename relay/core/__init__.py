"""Core domain types and logic."""

from .config import ConfigError, ProjectConfig, TargetConfig, find_config_file, load_config
from .context import RunContext, dry_run_from_env
from .errors import ErrorCode, ReleaseError, exit_code_for
from .result import Err, Ok, Result

__all__ = [
    # config
    "ConfigError",
    "ProjectConfig",
    "TargetConfig",
    "find_config_file",
    "load_config",
    # context
    "RunContext",
    "dry_run_from_env",
    # errors
    "ErrorCode",
    "ReleaseError",
    "exit_code_for",
    # result
    "Err",
    "Ok",
    "Result",
]
