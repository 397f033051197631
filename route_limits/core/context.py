"""Execution context detection.

Rate limits only apply to live served requests; CLI invocations and background
jobs bypass them. Automated test runs are flagged so policies can opt out.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from route_limits.core.config import RunMode, Settings


@dataclass(frozen=True)
class ExecutionContext:
    run_mode: RunMode = "http"
    is_test: bool = False

    @property
    def is_cli(self) -> bool:
        return self.run_mode == "cli"

    @property
    def is_background(self) -> bool:
        return self.run_mode == "background"

    @property
    def is_served(self) -> bool:
        """True when handling live HTTP requests."""
        return self.run_mode == "http"

    def as_cli(self) -> ExecutionContext:
        return replace(self, run_mode="cli")


def build_execution_context(app_settings: Settings) -> ExecutionContext:
    return ExecutionContext(run_mode=app_settings.app.run_mode, is_test=app_settings.is_test)
