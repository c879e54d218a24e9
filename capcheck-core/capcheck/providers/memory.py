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

"""In-memory program representation.

Plain dataclasses satisfying the protocols in ``capcheck.models.program``.
Used by the text provider, by test fixtures, and by ``load_program_json``
to read a program dump exported from an external analysis framework:

    {
      "root": "path/to/project",
      "methods": [
        {
          "signature": "@entry/src/main/ets/pages/Index.ets: Index.locate()",
          "statements": [
            {"text": "...", "line": 12,
             "calls": [{"name": "getCurrentLocation", "args": [], "line": 12, "column": 9}]}
          ]
        }
      ]
    }

A method with ``"statements": null`` has no body.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional

from capcheck.models.program import Position, ProjectLoadError

logger = logging.getLogger(__name__)


@dataclass
class MemoryCall:
    name: Optional[str]
    args: list[str] = field(default_factory=list)
    line: Optional[int] = None
    column: Optional[int] = None
    text: str = ""

    def __post_init__(self) -> None:
        if not self.text:
            self.text = f"{self.name or '<unresolved>'}({', '.join(self.args)})"

    def callee_name(self) -> Optional[str]:
        return self.name

    def arguments(self) -> list[str]:
        return list(self.args)

    def position(self) -> Optional[Position]:
        if self.line is None:
            return None
        return (self.line, self.column or 1)


@dataclass
class MemoryStatement:
    text: str
    call_list: list[MemoryCall] = field(default_factory=list)
    line: Optional[int] = None

    def calls(self) -> list[MemoryCall]:
        return list(self.call_list)

    def position(self) -> Optional[Position]:
        if self.line is None:
            return None
        return (self.line, 1)


@dataclass
class MemoryMethod:
    signature: str
    body: Optional[list[MemoryStatement]] = None

    def statements(self) -> Optional[list[MemoryStatement]]:
        return self.body


@dataclass
class MemoryProgram:
    method_list: list[MemoryMethod] = field(default_factory=list)
    root: Optional[Path] = None

    def methods(self) -> Iterator[MemoryMethod]:
        return iter(self.method_list)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _position_field(value: Any) -> Optional[int]:
    """Positions are kept only when the dump gives a real positive int."""
    if isinstance(value, int) and not isinstance(value, bool) and value >= 1:
        return value
    return None


def _call_from_dict(data: dict[str, Any]) -> MemoryCall:
    name = data.get("name")
    args = data.get("args")
    return MemoryCall(
        name=name if isinstance(name, str) and name else None,
        args=[_text(a) for a in args] if isinstance(args, list) else [],
        line=_position_field(data.get("line")),
        column=_position_field(data.get("column")),
        text=_text(data.get("text")),
    )


def _statement_from_dict(data: dict[str, Any]) -> MemoryStatement:
    return MemoryStatement(
        text=_text(data.get("text")),
        call_list=[_call_from_dict(c) for c in data.get("calls") or []],
        line=_position_field(data.get("line")),
    )


def program_from_dict(data: dict[str, Any], base_dir: Path | None = None) -> MemoryProgram:
    """Build a MemoryProgram from a decoded dump."""
    if not isinstance(data, dict) or not isinstance(data.get("methods"), list):
        raise ProjectLoadError("program dump must be an object with a 'methods' list")

    root: Optional[Path] = None
    if data.get("root"):
        if not isinstance(data["root"], str):
            raise ProjectLoadError("program dump 'root' must be a path string")
        root = Path(data["root"])
        if not root.is_absolute() and base_dir is not None:
            root = base_dir / root

    methods = []
    try:
        for entry in data["methods"]:
            body = entry.get("statements")
            if not isinstance(entry["signature"], str):
                raise TypeError(f"method signature must be a string, got {entry['signature']!r}")
            methods.append(
                MemoryMethod(
                    signature=entry["signature"],
                    body=None if body is None else [_statement_from_dict(s) for s in body],
                )
            )
    except (KeyError, TypeError, AttributeError) as e:
        raise ProjectLoadError(f"malformed program dump: {e}") from e

    return MemoryProgram(method_list=methods, root=root)


def load_program_json(path: str | Path) -> MemoryProgram:
    """Load a program dump from JSON. Any read or decode failure is fatal."""
    source = Path(path)
    try:
        with open(source, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ProjectLoadError(f"could not load program dump {source}: {e}") from e

    program = program_from_dict(data, base_dir=source.parent)
    logger.info("Loaded program dump %s (%d methods)", source, len(program.method_list))
    return program
