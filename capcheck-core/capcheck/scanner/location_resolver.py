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

"""Location resolver — best-effort line numbers for call sightings.

The program representation often drops positions. Ordered fallbacks:
1. a ``file:line:column`` token embedded in the statement or call text
2. the provider's position for the call expression or statement
3. a scan of the source file for the call inside the enclosing method

Absence of a location is a normal outcome: the resolver returns None and
never raises. File contents are cached per path for the resolver's lifetime.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from capcheck.models.findings import CallSighting
from capcheck.models.program import Position

logger = logging.getLogger(__name__)

# e.g. "entry/src/main/ets/pages/Index.ets:42:17"
POSITION_TOKEN = re.compile(r"[\w./\\-]+\.[A-Za-z]+:(\d+):(\d+)")

# "@entry/src/main/ets/pages/Index.ets: Index.checkIn()"
SIGNATURE_FILE = re.compile(r"@([^:]+):")
SIGNATURE_METHOD = re.compile(r"\.([^.()]+)\([^)]*\)$")

# A method or function declaration line: optional modifiers, a lower-case
# name, a parameter list and an opening brace. Upper-case names are UI
# component calls with trailing builder blocks.
DECLARATION = re.compile(
    r"^\s*(?:(?:public|private|protected|static|async|export|default|override|function)\s+)*"
    r"(?:get\s+|set\s+)?([a-z_$][\w$]*)\s*(?:<[^>]*>)?\s*\([^)]*\)\s*(?::\s*[^{=]+)?\{\s*$"
)

CONTROL_KEYWORDS = frozenset({
    "if", "for", "while", "switch", "catch", "return", "else", "do", "try",
    "with", "new", "typeof", "await", "throw",
})


def file_from_signature(signature: str) -> Optional[str]:
    """Extract the file qualifier from a method signature."""
    match = SIGNATURE_FILE.search(signature)
    if match:
        return match.group(1).strip()
    return None


def method_name_from_signature(signature: str) -> str:
    """Extract the bare method name: ``@a/b.ts: Index.checkIn()`` -> ``checkIn``."""
    match = SIGNATURE_METHOD.search(signature.strip())
    if match:
        return match.group(1)
    last = signature.split(".")[-1]
    return re.sub(r"\([^)]*\)$", "", last).strip()


def line_from_text(*texts: str) -> Optional[int]:
    """Parse the line out of the first ``file:line:column`` token found."""
    for text in texts:
        if not text:
            continue
        match = POSITION_TOKEN.search(text)
        if match:
            line = int(match.group(1))
            if line >= 1:
                return line
    return None


def _is_comment(line: str) -> bool:
    stripped = line.lstrip()
    return stripped.startswith(("//", "/*", "*"))


def _declared_name(line: str) -> Optional[str]:
    match = DECLARATION.match(line)
    if match and match.group(1) not in CONTROL_KEYWORDS:
        return match.group(1)
    return None


class LocationResolver:
    """Recovers line numbers for sightings that lack one.

    Args:
        root: Directory that relative file qualifiers are resolved against.
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = root
        self._lines: dict[Path, Optional[list[str]]] = {}

    def _path_for(self, file_name: str) -> Path:
        path = Path(file_name)
        if not path.is_absolute() and self.root is not None:
            path = self.root / path
        return path

    def _read_lines(self, file_name: str) -> Optional[list[str]]:
        path = self._path_for(file_name)
        if path not in self._lines:
            try:
                self._lines[path] = path.read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError) as e:
                logger.debug("Could not read %s for location fallback: %s", path, e)
                self._lines[path] = None
        return self._lines[path]

    def _confirm_scope(self, lines: list[str], index: int, method_name: str) -> bool:
        """Walk upward from ``index`` looking for the enclosing method's declaration.

        Only declaration lines count, so a call such as ``this.locate()`` in
        another method does not confirm ``locate``. Stops at the first
        declaration of a different method or function.
        """
        for i in range(index - 1, -1, -1):
            line = lines[i]
            if _is_comment(line):
                continue
            declared = _declared_name(line)
            if declared is not None:
                return declared == method_name
        return False

    def scan_source(self, file_name: str, callee: str, method_signature: str) -> Optional[int]:
        """Find the 1-based line of ``callee(`` inside the enclosing method.

        The first candidate confirmed to sit inside the enclosing method wins;
        otherwise the first candidate at all is returned as a weaker answer.
        """
        lines = self._read_lines(file_name)
        if not lines:
            return None

        method_name = method_name_from_signature(method_signature)
        call_pattern = re.compile(r"(?<![\w$])" + re.escape(callee) + r"\s*\(")
        first_candidate: Optional[int] = None

        for index, line in enumerate(lines):
            if _is_comment(line) or not call_pattern.search(line):
                continue
            if first_candidate is None:
                first_candidate = index + 1
            if method_name and self._confirm_scope(lines, index, method_name):
                return index + 1

        return first_candidate

    def resolve(
        self,
        sighting: CallSighting,
        position: Optional[Position] = None,
    ) -> Optional[int]:
        """Return a line for ``sighting``, or None when nothing can be recovered."""
        if sighting.line is not None:
            return sighting.line

        line = line_from_text(sighting.statement_text, sighting.call_text)
        if line is not None:
            return line

        if position and position[0] >= 1:
            return position[0]

        file_name = sighting.source_file or file_from_signature(sighting.enclosing_method_signature)
        if not file_name:
            return None
        return self.scan_source(file_name, sighting.callee_name, sighting.enclosing_method_signature)
