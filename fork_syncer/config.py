"""
Configuration handling for fork_syncer.

Defines the configuration schema and resolves it from command-line flags,
environment variables and built-in defaults, in that order of precedence.
"""

from collections.abc import Mapping
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidArgument

Strategy = Literal["rebase", "merge"]

# Config field -> (command-line flag, environment variable)
FIELD_SOURCES: dict[str, tuple[str, str]] = {
    "strategy": ("--strategy", "STRATEGY"),
    "push": ("--push", "PUSH"),
    "origin_remote": ("--origin", "ORIGIN"),
    "upstream_remote": ("--upstream", "UPSTREAM"),
    "main_branch": ("--main", "MAIN_BRANCH"),
    "fork_branch": ("--fork", "FORK_BRANCH"),
    "dry_run": ("--dry-run", "DRY_RUN"),
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class SyncConfig(BaseModel):
    """Resolved settings for a single sync run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    strategy: Strategy = Field(
        default="rebase", description="How to integrate the fork branch into main"
    )
    push: bool = Field(default=True, description="Push main to origin after updating")
    origin_remote: str = Field(
        default="origin", description="Remote receiving the updated main branch"
    )
    upstream_remote: str = Field(
        default="upstream", description="Remote providing the source-of-truth main branch"
    )
    main_branch: str = Field(default="main", description="Customized local branch")
    fork_branch: str = Field(
        default="fork", description="Local branch mirroring the upstream main branch"
    )
    dry_run: bool = Field(default=False, description="Print commands without executing")

    @field_validator("origin_remote", "upstream_remote", "main_branch", "fork_branch")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def upstream_ref(self) -> str:
        """Remote-tracking ref of the upstream main branch."""
        return f"{self.upstream_remote}/{self.main_branch}"

    def to_yaml(self) -> str:
        """Render the configuration as YAML."""
        return yaml.safe_dump(
            self.model_dump(mode="json"),
            default_flow_style=False,
            sort_keys=False,
        )


def parse_bool(value: str, source: str) -> bool:
    """Parse a boolean environment value such as ``1``/``0``."""
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise InvalidArgument(f"Invalid {source}: {value!r} (use 1 or 0)")


def _describe(error: dict, from_environment: set[str]) -> str:
    field = str(error["loc"][0]) if error["loc"] else "configuration"
    flag, env = FIELD_SOURCES.get(field, (field, field))
    message = error["msg"].removeprefix("Value error, ")
    if field in from_environment:
        return f"Invalid {env}: {error['input']!r} ({message}; or pass {flag})"
    return f"Invalid {flag}: {error['input']!r} ({message}; also settable via {env})"


def resolve_config(
    flags: Mapping[str, object],
    environ: Mapping[str, str],
) -> SyncConfig:
    """
    Merge command-line flags, environment overrides and defaults.

    Args:
        flags: Values taken from the command line, keyed by config field.
            A value of None means the flag was not given.
        environ: Environment variables (usually ``os.environ``).

    Returns:
        The validated, immutable configuration.

    Raises:
        InvalidArgument: if a value cannot be parsed or fails validation.
    """
    values: dict[str, object] = {}
    from_environment: set[str] = set()

    for field, (_flag, env) in FIELD_SOURCES.items():
        flag_value = flags.get(field)
        if flag_value is not None:
            values[field] = flag_value
            continue
        # Empty variables count as unset, like ${VAR:-default}
        env_value = environ.get(env, "")
        if not env_value:
            continue
        from_environment.add(field)
        if field in ("push", "dry_run"):
            values[field] = parse_bool(env_value, env)
        else:
            values[field] = env_value

    try:
        return SyncConfig(**values)
    except ValidationError as e:
        details = [_describe(err, from_environment) for err in e.errors()]
        raise InvalidArgument("; ".join(details)) from e
