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

"""Method analyzer: folds one method's statement stream into MethodFacts.

Each statement is visited exactly once, in order:
- exception-handling markers in the statement text set a monotonic flag
- ``canIUse(...)`` arguments contribute capability strings
- every other resolved callee that is not a language built-in and is in
  the catalog becomes a CallSighting

A guard anywhere in the method counts, regardless of where it sits
relative to the API call. No dominance or reachability check is made.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from capcheck.models.findings import CallSighting, MethodFacts
from capcheck.models.program import CallExpression, Method, Statement
from capcheck.policy.catalog import CapabilityCatalog
from capcheck.scanner.location_resolver import line_from_text

logger = logging.getLogger(__name__)

GUARD_FUNCTION = "canIUse"

CAPABILITY_PATTERN = re.compile(r"SystemCapability\.[A-Za-z0-9.]+")

# How the analysis framework renders exception flow in statement text
EXCEPTION_MARKERS: tuple[str, ...] = ("caughtexception", "caught", "throw")

# String/array/object/console/promise primitives. Checked before the
# catalog, so a catalog entry with one of these names is never reported.
EXCLUDED_CALLEES: frozenset[str] = frozenset({
    # Object.prototype
    "toString", "valueOf", "hasOwnProperty", "isPrototypeOf",
    "propertyIsEnumerable", "toLocaleString", "constructor",
    # Array.prototype
    "length", "concat", "join", "pop", "push", "reverse", "shift", "slice",
    "sort", "splice", "unshift", "indexOf", "lastIndexOf", "every", "some",
    "forEach", "map", "filter", "reduce", "reduceRight",
    # String.prototype
    "charAt", "charCodeAt", "fromCharCode", "localeCompare", "match",
    "replace", "search", "split", "substr", "substring", "toLowerCase",
    "toUpperCase", "trim", "trimLeft", "trimRight",
    # console / hilog
    "log", "info", "warn", "error", "debug", "trace", "assert", "clear",
    "count", "dir", "dirxml", "group", "groupCollapsed", "groupEnd",
    "profile", "profileEnd", "table", "time", "timeEnd", "timeStamp",
    # JSON / Object statics
    "parse", "stringify", "keys", "values", "entries", "assign", "create",
    "defineProperty", "defineProperties", "freeze", "seal",
    "preventExtensions", "isExtensible", "isFrozen", "isSealed",
    "getOwnPropertyDescriptor", "getOwnPropertyNames",
    "getOwnPropertySymbols", "getPrototypeOf", "setPrototypeOf",
    # Function.prototype
    "call", "apply", "bind",
    # Promise
    "then", "catch", "finally", "resolve", "reject", "all", "race",
    "allSettled", "any",
})


def extract_capability(text: str) -> Optional[str]:
    """Return the first ``SystemCapability.*`` token in ``text``, if any."""
    match = CAPABILITY_PATTERN.search(text)
    if match:
        # A trailing dot belongs to the surrounding text, not the identifier
        return match.group(0).rstrip(".")
    return None


def has_exception_marker(text: str) -> bool:
    return any(marker in text for marker in EXCEPTION_MARKERS)


def _resolve_callee(call: CallExpression) -> Optional[str]:
    try:
        return call.callee_name()
    except Exception as e:
        logger.debug("Unresolvable call %r: %s", getattr(call, "text", call), e)
        return None


def _guard_capabilities(call: CallExpression) -> list[str]:
    try:
        args = call.arguments()
    except Exception as e:
        logger.debug("Could not read guard arguments of %r: %s", call.text, e)
        return []
    found = []
    for arg in args:
        capability = extract_capability(str(arg))
        if capability:
            found.append(capability)
    return found


def _position_line(node: CallExpression | Statement) -> Optional[int]:
    try:
        pos = node.position()
        if pos and pos[0] >= 1:
            return int(pos[0])
    except Exception as e:
        logger.debug("Unusable position for %r: %s", getattr(node, "text", node), e)
    return None


def _sighting(
    name: str,
    call: CallExpression,
    stmt: Statement,
    signature: str,
    source_file: Optional[str],
) -> CallSighting:
    try:
        args = [str(a) for a in call.arguments()]
    except Exception:
        args = []
    return CallSighting(
        callee_name=name,
        arguments=args,
        statement_text=stmt.text,
        call_text=call.text,
        enclosing_method_signature=signature,
        source_file=source_file,
        line=line_from_text(stmt.text, call.text) or _position_line(call) or _position_line(stmt),
    )


def analyze_method(
    method: Method,
    catalog: CapabilityCatalog,
    source_file: Optional[str] = None,
) -> Optional[MethodFacts]:
    """Analyze one method. Returns None for methods without a body or statements.

    Args:
        method: The method to analyze. Nothing outside it is inspected.
        catalog: API name -> capability lookup.
        source_file: File qualifier of the method, recorded on each sighting.
    """
    statements = method.statements()
    if not statements:
        return None

    signature = method.signature
    guarded: set[str] = set()
    has_exception_handling = False
    sightings: list[CallSighting] = []

    for stmt in statements:
        if not has_exception_handling and has_exception_marker(stmt.text):
            has_exception_handling = True

        for call in stmt.calls():
            name = _resolve_callee(call)
            if not name:
                continue

            if name == GUARD_FUNCTION:
                guarded.update(_guard_capabilities(call))
                continue

            if name in EXCLUDED_CALLEES:
                continue

            if catalog.lookup(name) is not None:
                sightings.append(_sighting(name, call, stmt, signature, source_file))

    return MethodFacts(
        method_signature=signature,
        source_file=source_file,
        guarded_capabilities=frozenset(guarded),
        has_exception_handling=has_exception_handling,
        api_sightings=tuple(sightings),
    )
