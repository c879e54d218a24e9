# capcheck — Capability Guard Checker
# Copyright (C) 2026 capcheck Project Contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""Pydantic models for call sightings, per-method facts, findings and the run report."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from capcheck import __version__


class CallSighting(BaseModel):
    """One observed invocation of a catalog API inside a method.

    Created while walking a single method's statements and never mutated
    afterwards. ``line`` is None when the provider had no position; the
    location resolver recovers one when the finding is built.
    """

    model_config = ConfigDict(frozen=True)

    callee_name: str
    arguments: list[str] = Field(default_factory=list)
    statement_text: str = ""
    call_text: str = ""
    enclosing_method_signature: str
    source_file: Optional[str] = None
    line: Optional[int] = Field(default=None, ge=1)


class MethodFacts(BaseModel):
    """Aggregated state for one method.

    ``guarded_capabilities`` and ``has_exception_handling`` are scoped to this
    method only; facts from different methods are never combined.
    """

    model_config = ConfigDict(frozen=True)

    method_signature: str
    source_file: Optional[str] = None
    guarded_capabilities: frozenset[str] = frozenset()
    has_exception_handling: bool = False
    api_sightings: tuple[CallSighting, ...] = ()

    @property
    def has_any_guard(self) -> bool:
        return bool(self.guarded_capabilities)


class Severity(str, Enum):
    """Verdict for a (method, API) pair."""

    SEVERE = "severe"        # no matching guard and no exception handling
    ADVISORY = "advisory"    # exception handling present, matching guard missing
    COMPLIANT = "compliant"  # matching guard present


class Finding(BaseModel):
    """One classified (method, API) usage.

    ``is_guarded`` means guarded by the exact capability the API requires.
    ``has_any_guard`` is true for any guard call in the method, including
    one that checks an unrelated capability.
    """

    model_config = ConfigDict(frozen=True)

    api_name: str
    required_capability: str
    is_guarded: bool
    has_any_guard: bool
    is_exception_wrapped: bool
    severity: Severity
    method_signature: str
    method_name: str = ""
    resolved_file: Optional[str] = None
    resolved_line: Optional[int] = None

    @property
    def location(self) -> str:
        """Human-readable ``file:line`` string, with placeholders for unknowns."""
        file_name = self.resolved_file or "unknown"
        if self.resolved_line is None:
            return f"{file_name} (line unknown)"
        return f"{file_name}:{self.resolved_line}"


class ReportSummary(BaseModel):
    """Run-level counts."""

    model_config = ConfigDict(frozen=True)

    distinct_apis: int = 0
    total_findings: int = 0
    findings_with_any_guard: int = 0
    findings_with_correct_guard: int = 0
    findings_with_exception_handling: int = 0


class Report(BaseModel):
    """The complete result of one analysis run.

    A failed run (the program representation could not be built) carries
    ``error`` and a single error recommendation, and nothing else.
    """

    model_config = ConfigDict(frozen=True)

    capcheck_version: str = __version__
    project: str = ""
    findings: list[Finding] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    summary: ReportSummary = Field(default_factory=ReportSummary)
    error: Optional[str] = None

    @classmethod
    def failed(cls, message: str, project: str = "") -> "Report":
        return cls(
            project=project,
            recommendations=[f"Analysis failed: {message}"],
            error=message,
        )

    @property
    def ok(self) -> bool:
        return self.error is None

    def by_severity(self, severity: Severity) -> list[Finding]:
        return [f for f in self.findings if f.severity == severity]

    @property
    def api_names(self) -> list[str]:
        """Distinct API names in first-seen order."""
        return list(dict.fromkeys(f.api_name for f in self.findings))
