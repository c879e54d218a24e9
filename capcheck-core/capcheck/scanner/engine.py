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

"""Analysis entry point: program representation + catalog -> Report.

Pipeline per run:
  provider -> method analyzer (per method) -> location resolver
  -> finding classifier -> Report

Methods are processed serially and independently. The only fatal
condition is ProjectLoadError from the provider; it yields a failed
Report carrying a single error recommendation.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from capcheck.models.findings import MethodFacts, Report
from capcheck.models.program import ProgramRepresentation, ProjectLoadError
from capcheck.policy.catalog import CapabilityCatalog
from capcheck.scanner.classifier import classify
from capcheck.scanner.location_resolver import LocationResolver, file_from_signature
from capcheck.scanner.method_analyzer import analyze_method

logger = logging.getLogger(__name__)


def collect_method_facts(
    program: ProgramRepresentation,
    catalog: CapabilityCatalog,
) -> list[MethodFacts]:
    """Run the method analyzer over every method with a body."""
    collected: list[MethodFacts] = []
    for method in program.methods():
        facts = analyze_method(method, catalog, file_from_signature(method.signature))
        if facts is None:
            continue
        if facts.api_sightings:
            logger.debug(
                "%s: %d API sighting(s), guards=%s, exception handling=%s",
                facts.method_signature,
                len(facts.api_sightings),
                sorted(facts.guarded_capabilities),
                facts.has_exception_handling,
            )
        collected.append(facts)
    return collected


def analyze_program(
    program: ProgramRepresentation,
    catalog: CapabilityCatalog,
    resolver: Optional[LocationResolver] = None,
    project: str = "",
) -> Report:
    """Analyze a built program representation and return its Report.

    Args:
        program: The built representation (methods, statements, calls).
        catalog: API name -> required capability.
        resolver: Location resolver; defaults to one rooted at ``program.root``.
        project: Display name recorded in the report.
    """
    if resolver is None:
        resolver = LocationResolver(getattr(program, "root", None))
    facts = collect_method_facts(program, catalog)
    report = classify(facts, catalog, resolver, project=project)
    logger.info(
        "Analyzed %d method(s): %d finding(s) across %d API(s)",
        len(facts),
        report.summary.total_findings,
        report.summary.distinct_apis,
    )
    return report


def run_analysis(
    load: Callable[[], ProgramRepresentation],
    catalog: CapabilityCatalog,
    project: str = "",
) -> Report:
    """Build the program representation with ``load`` and analyze it.

    A ProjectLoadError, raised while building or while enumerating methods,
    aborts the run and is reported as a failed Report.
    """
    try:
        program = load()
        return analyze_program(program, catalog, project=project)
    except ProjectLoadError as e:
        logger.error("Could not build program representation: %s", e)
        return Report.failed(str(e), project=project)
