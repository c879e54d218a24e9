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

"""Finding classifier and aggregator.

Turns per-method facts into deduplicated findings, assigns severity by a
fixed decision table, and builds recommendations plus run summary counts.

Decision table (first match wins):

    correct guard | exception-wrapped | severity
    --------------+-------------------+----------
    no            | no                | SEVERE
    no            | yes               | ADVISORY
    yes           | either            | COMPLIANT
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from capcheck.models.findings import (
    CallSighting,
    Finding,
    MethodFacts,
    Report,
    ReportSummary,
    Severity,
)
from capcheck.policy.catalog import CapabilityCatalog
from capcheck.scanner.location_resolver import (
    LocationResolver,
    file_from_signature,
    method_name_from_signature,
)

logger = logging.getLogger(__name__)

UNKNOWN_FILE = "unknown"


def classify_severity(has_correct_guard: bool, is_exception_wrapped: bool) -> Severity:
    if not has_correct_guard and not is_exception_wrapped:
        return Severity.SEVERE
    if not has_correct_guard:
        return Severity.ADVISORY
    return Severity.COMPLIANT


def _first_sightings(sightings: Iterable[CallSighting]) -> list[CallSighting]:
    """Keep the first sighting of each API name, preserving order."""
    seen: dict[str, CallSighting] = {}
    for sighting in sightings:
        seen.setdefault(sighting.callee_name, sighting)
    return list(seen.values())


def build_findings(
    facts: MethodFacts,
    catalog: CapabilityCatalog,
    resolver: Optional[LocationResolver] = None,
) -> list[Finding]:
    """Build one finding per distinct API called in the method."""
    findings: list[Finding] = []
    resolved_file = facts.source_file or file_from_signature(facts.method_signature)
    method_name = method_name_from_signature(facts.method_signature)

    for sighting in _first_sightings(facts.api_sightings):
        required = catalog.lookup(sighting.callee_name)
        if required is None:
            # Catalog changed between analysis and classification
            logger.debug("Dropping %s: no longer in catalog", sighting.callee_name)
            continue

        line = sighting.line
        if line is None and resolver is not None:
            line = resolver.resolve(sighting)

        has_correct_guard = required in facts.guarded_capabilities
        findings.append(
            Finding(
                api_name=sighting.callee_name,
                required_capability=required,
                is_guarded=has_correct_guard,
                has_any_guard=facts.has_any_guard,
                is_exception_wrapped=facts.has_exception_handling,
                severity=classify_severity(has_correct_guard, facts.has_exception_handling),
                method_signature=facts.method_signature,
                method_name=method_name,
                resolved_file=resolved_file,
                resolved_line=line,
            )
        )
    return findings


def build_recommendation(finding: Finding) -> Optional[str]:
    """Recommendation text for SEVERE and ADVISORY findings; None otherwise."""
    file_name = finding.resolved_file or UNKNOWN_FILE
    method = finding.method_name or finding.method_signature
    if finding.severity == Severity.SEVERE:
        return (
            f"Severe: {finding.api_name}() in method {method} of {file_name} has neither "
            f'canIUse("{finding.required_capability}") nor try/catch'
        )
    if finding.severity == Severity.ADVISORY:
        return (
            f'Advisory: add canIUse("{finding.required_capability}") before '
            f"{finding.api_name}() in method {method} of {file_name}"
        )
    return None


def build_recommendations(findings: list[Finding]) -> list[str]:
    """All SEVERE recommendations first, then ADVISORY, each in finding order."""
    recommendations: list[str] = []
    for severity in (Severity.SEVERE, Severity.ADVISORY):
        for finding in findings:
            if finding.severity == severity:
                text = build_recommendation(finding)
                if text:
                    recommendations.append(text)
    return recommendations


def summarize(findings: list[Finding]) -> ReportSummary:
    return ReportSummary(
        distinct_apis=len({f.api_name for f in findings}),
        total_findings=len(findings),
        findings_with_any_guard=sum(1 for f in findings if f.has_any_guard),
        findings_with_correct_guard=sum(1 for f in findings if f.is_guarded),
        findings_with_exception_handling=sum(1 for f in findings if f.is_exception_wrapped),
    )


def classify(
    method_facts: Iterable[MethodFacts],
    catalog: CapabilityCatalog,
    resolver: Optional[LocationResolver] = None,
    project: str = "",
) -> Report:
    """Aggregate all methods' facts for a run into a Report."""
    findings: list[Finding] = []
    for facts in method_facts:
        findings.extend(build_findings(facts, catalog, resolver))

    return Report(
        project=project,
        findings=findings,
        recommendations=build_recommendations(findings),
        summary=summarize(findings),
    )
