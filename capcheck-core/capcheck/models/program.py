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

"""Protocols for the program representation consumed by the analyzer.

The representation itself is built by an external static-analysis
framework (or by one of the providers in ``capcheck.providers``). Every
field is best-effort: callee names, argument renderings and positions may
be missing, and the analyzer treats each absence as "skip" rather than as
an error.

Only ``ProjectLoadError`` ends a run.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Protocol, runtime_checkable

# (line, column), both 1-based
Position = tuple[int, int]


class ProjectLoadError(Exception):
    """The program representation could not be built for a project."""


@runtime_checkable
class CallExpression(Protocol):
    """A single invoke expression inside a statement."""

    text: str

    def callee_name(self) -> Optional[str]:
        """Resolved callee name, or None when the provider cannot resolve it.

        Providers may also raise; the analyzer treats that the same as None.
        """
        ...

    def arguments(self) -> list[str]:
        """Textual rendering of every argument, in order."""
        ...

    def position(self) -> Optional[Position]: ...


@runtime_checkable
class HasCallees(Protocol):
    """A statement: a textual rendering plus its ordered call expressions."""

    text: str

    def calls(self) -> list[CallExpression]: ...

    def position(self) -> Optional[Position]: ...


Statement = HasCallees


@runtime_checkable
class HasStatements(Protocol):
    """A method: a signature plus its ordered statement sequence."""

    signature: str

    def statements(self) -> Optional[list[Statement]]:
        """Ordered statements of the body, or None when there is no body."""
        ...


Method = HasStatements


@runtime_checkable
class ProgramRepresentation(Protocol):
    """A built program: an enumerable set of methods for one project."""

    root: Optional[Path]

    def methods(self) -> Iterable[Method]: ...
