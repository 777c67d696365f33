"""Custom exception hierarchy for loadscope."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class LoadScopeError(Exception):
    """Base exception for all loadscope errors.

    Every error raised by the harness itself inherits from this class, so a
    caller driving a run can catch any harness failure with one clause.
    Step failures against the target are never raised; they become error
    samples in the metrics accumulator.
    """


class ConfigError(LoadScopeError):
    """Raised when configuration is invalid, before any load is generated.

    Examples:
        - A ramp plan is empty or has a non-positive stage duration.
        - A scenario has a zero or negative weight.
        - The same endpoint key is declared twice.
        - A threshold expression cannot be parsed.
        - An environment variable has an invalid value.
    """


class ScenarioError(LoadScopeError):
    """Raised when a scenario file cannot be loaded or is malformed.

    Examples:
        - The scenario file does not exist or fails to import.
        - The module does not expose a ``library`` ScenarioLibrary.
    """


class TargetUnreachableError(LoadScopeError):
    """Raised when the reachability check against the target fails.

    The run aborts before any virtual user is spawned.
    """


class EngineError(LoadScopeError):
    """Raised when the load session fails for a harness-internal reason."""


class ReportError(LoadScopeError):
    """Raised when one or more report artifacts could not be written.

    Attributes:
        failures: Mapping of artifact name to the underlying error message.
        written: Mapping of artifact name to the path of artifacts that
            were written successfully despite the failures.
    """

    def __init__(
        self,
        message: str,
        failures: dict[str, str] | None = None,
        written: dict[str, Path] | None = None,
    ) -> None:
        super().__init__(message)
        self.failures: dict[str, str] = dict(failures or {})
        self.written: dict[str, Path] = dict(written or {})
