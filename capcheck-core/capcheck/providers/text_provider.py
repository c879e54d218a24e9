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

"""ArkTS/TypeScript text provider — regex-based program representation.

Builds methods, statements and call expressions straight from .ets/.ts
sources using regex + brace tracking (no compiler front end). Precision is
lower than a real analysis framework but every field the analyzer needs is
populated, including positions.

Conventions follow the analysis framework's naming:
- method signatures render as ``@<relative/file.ets>: <Class>.<method>()``
- free functions and top-level code belong to the ``%dflt`` class
- class field initializers form a synthetic ``%instInit`` method
- a ``catch (e)`` clause renders as an ``e = caughtexception`` statement
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence

from capcheck.models.program import ProjectLoadError
from capcheck.providers.coordinator import SOURCE_EXTENSIONS, discover_sources
from capcheck.providers.memory import MemoryCall, MemoryMethod, MemoryProgram, MemoryStatement

logger = logging.getLogger(__name__)

DEFAULT_CLASS = "%dflt"
DEFAULT_METHOD = "%dflt"
INSTANCE_INIT = "%instInit"

# Lines an argument list may span
MAX_CALL_LINES = 20

_MODIFIERS = r"(?:(?:public|private|protected|static|async|export|default|abstract|override|declare|readonly)\s+)*"

CLASS_DECL = re.compile(
    r"^\s*(?:@\w+(?:\([^)]*\))?\s+)*" + _MODIFIERS
    + r"(class|struct|interface|namespace|enum)\s+([A-Za-z_$][\w$]*)"
)

FUNCTION_DECL = re.compile(
    r"^\s*" + _MODIFIERS + r"function\s*\*?\s*([A-Za-z_$][\w$]*)\s*(?:<[^>]*>)?\s*\("
)

METHOD_DECL = re.compile(
    r"^\s*(?:@\w+(?:\([^)]*\))?\s+)*" + _MODIFIERS
    + r"(?:get\s+|set\s+)?([A-Za-z_$][\w$]*)\s*(?:<[^>]*>)?\s*\("
)

ARROW_PROPERTY = re.compile(
    r"^\s*" + _MODIFIERS
    + r"([A-Za-z_$][\w$]*)\s*(?::[^=]+)?=\s*(?:async\s+)?(?:\([^)]*\)|[A-Za-z_$][\w$]*)\s*(?::[^=]+)?=>\s*\{"
)

CALL_SITE = re.compile(r"(?<![\w$])([A-Za-z_$][\w$]*)\s*(?:<[^<>()]*>)?\s*\(")

# "function f(" and "new Foo(" are not invoke expressions
DECLARING_PREFIX = re.compile(r"(?<![\w$])(?:function\s*\*?|new)\s*$")

CATCH_CLAUSE = re.compile(
    r"(?<![.\w$])catch\s*(?:\(\s*([A-Za-z_$][\w$]*)?[^)]*\))?\s*\{"
)

KEYWORDS = frozenset({
    "if", "for", "while", "switch", "catch", "return", "function", "new",
    "typeof", "instanceof", "await", "throw", "else", "do", "try", "with",
    "void", "delete", "in", "of", "super", "import", "export", "yield",
    "case",
})


@dataclass
class _Scope:
    kind: str  # "class" | "method"
    name: str
    body_depth: int
    owner: str = DEFAULT_CLASS


@dataclass
class _Pending:
    kind: str
    name: str
    owner: str = DEFAULT_CLASS


@dataclass
class _MethodBuilder:
    owner: str
    name: str
    statements: list[MemoryStatement] = field(default_factory=list)


def split_code(source: str) -> tuple[list[str], list[str]]:
    """Return (code, masked) line lists for ``source``.

    ``code`` has comments blanked out; ``masked`` additionally blanks the
    contents of string and template literals. Both keep every column, so
    offsets found in ``masked`` index straight into ``code``.
    """
    code: list[str] = []
    masked: list[str] = []
    quote: Optional[str] = None
    in_block = False
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < n else ""
        if ch == "\n":
            code.append("\n")
            masked.append("\n")
            if quote in ("'", '"'):
                quote = None  # unterminated literal ends at the line
            i += 1
            continue
        if in_block:
            if ch == "*" and nxt == "/":
                code.append("  ")
                masked.append("  ")
                in_block = False
                i += 2
            else:
                code.append(" ")
                masked.append(" ")
                i += 1
            continue
        if quote is not None:
            code.append(ch)
            if ch == "\\" and nxt and nxt != "\n":
                code.append(nxt)
                masked.append("  ")
                i += 2
                continue
            if ch == quote:
                masked.append(ch)
                quote = None
            else:
                masked.append(" ")
            i += 1
            continue
        if ch == "/" and nxt == "/":
            end = source.find("\n", i)
            end = n if end < 0 else end
            code.append(" " * (end - i))
            masked.append(" " * (end - i))
            i = end
            continue
        if ch == "/" and nxt == "*":
            code.append("  ")
            masked.append("  ")
            in_block = True
            i += 2
            continue
        if ch in ("'", '"', "`"):
            quote = ch
        code.append(ch)
        masked.append(ch)
        i += 1
    return "".join(code).split("\n"), "".join(masked).split("\n")


def _matching_paren(masked: str, open_idx: int) -> int:
    """Index of the ``)`` closing ``masked[open_idx]``, or -1 if it is not on this line."""
    depth = 0
    for i in range(open_idx, len(masked)):
        if masked[i] in "([{":
            depth += 1
        elif masked[i] in ")]}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _split_arguments(code: str, masked: str, start: int, end: int) -> list[str]:
    """Split ``code[start:end]`` at top-level commas (structure read from ``masked``)."""
    args: list[str] = []
    depth = 0
    begin = start
    for i in range(start, end):
        ch = masked[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == "," and depth == 0:
            args.append(code[begin:i].strip())
            begin = i + 1
    last = code[begin:end].strip()
    if last or args:
        args.append(last)
    return args


def _join_until_closed(
    code: str,
    masked: str,
    open_idx: int,
    following: Sequence[tuple[str, str]],
) -> tuple[str, str, int]:
    """Append following lines until the paren at ``open_idx`` closes.

    Returns the joined (code, masked) text and the closing index, or -1 if
    the call is still open after the last line given.
    """
    for next_code, next_masked in following[:MAX_CALL_LINES]:
        code = f"{code} {next_code}"
        masked = f"{masked} {next_masked}"
        close_idx = _matching_paren(masked, open_idx)
        if close_idx >= 0:
            return code, masked, close_idx
    return code, masked, -1


def extract_calls(
    code: str,
    masked: str,
    line_no: int,
    following: Sequence[tuple[str, str]] = (),
) -> list[MemoryCall]:
    """Every call expression starting on one line, left to right.

    A call whose argument list continues past the line takes its arguments
    from ``following`` lines.
    """
    calls: list[MemoryCall] = []
    for match in CALL_SITE.finditer(masked):
        name = match.group(1)
        if name in KEYWORDS:
            continue
        if DECLARING_PREFIX.search(masked[: match.start()]):
            continue
        open_idx = match.end() - 1
        call_code, call_masked = code, masked
        close_idx = _matching_paren(masked, open_idx)
        if close_idx < 0 and following:
            call_code, call_masked, close_idx = _join_until_closed(code, masked, open_idx, following)
        end = close_idx if close_idx >= 0 else len(call_masked)
        args = _split_arguments(call_code, call_masked, open_idx + 1, end)
        text_end = close_idx + 1 if close_idx >= 0 else len(call_code)
        calls.append(
            MemoryCall(
                name=name,
                args=args,
                line=line_no,
                column=match.start() + 1,
                text=call_code[match.start():text_end].strip(),
            )
        )
    return calls


def _is_trivial(text: str) -> bool:
    return not text.strip(" \t{}();,")


def _statements_for(
    code: str,
    masked: str,
    line_no: int,
    following: Sequence[tuple[str, str]] = (),
) -> list[MemoryStatement]:
    """Statements for one body line; a catch clause becomes its own statement."""
    statements: list[MemoryStatement] = []
    catch = CATCH_CLAUSE.search(masked)
    if catch:
        var = code[catch.start(1):catch.end(1)] if catch.group(1) else "e"
        statements.append(MemoryStatement(text=f"{var} = caughtexception", line=line_no))
        code = code[:catch.start()] + " " * (catch.end() - catch.start()) + code[catch.end():]
        masked = masked[:catch.start()] + " " * (catch.end() - catch.start()) + masked[catch.end():]
    if _is_trivial(code):
        return statements
    statements.append(
        MemoryStatement(
            text=code.strip(),
            call_list=extract_calls(code, masked, line_no, following),
            line=line_no,
        )
    )
    return statements


def _declaration(masked: str, scope: Optional[_Scope], depth: int) -> Optional[_Pending]:
    """Recognise a class, method or function declaration at the current position."""
    at_class_body = scope is not None and scope.kind == "class" and depth == scope.body_depth

    match = CLASS_DECL.match(masked)
    if match and not at_class_body:
        return _Pending(kind="class", name=match.group(2))

    if at_class_body:
        match = ARROW_PROPERTY.match(masked) or METHOD_DECL.match(masked)
        if match and match.group(1) not in KEYWORDS:
            return _Pending(kind="method", name=match.group(1), owner=scope.name)
        return None

    match = FUNCTION_DECL.match(masked)
    if match:
        return _Pending(kind="method", name=match.group(1), owner=DEFAULT_CLASS)
    return None


def parse_source(source: str, relative_name: str) -> list[MemoryMethod]:
    """Parse one source file into methods with ordered statements."""
    code_lines, masked_lines = split_code(source)
    file_name = Path(relative_name).as_posix()

    builders: list[_MethodBuilder] = []
    synthetic: dict[tuple[str, str], _MethodBuilder] = {}

    def synthetic_method(owner: str, name: str) -> _MethodBuilder:
        key = (owner, name)
        if key not in synthetic:
            synthetic[key] = _MethodBuilder(owner=owner, name=name)
            builders.append(synthetic[key])
        return synthetic[key]

    scopes: list[_Scope] = []
    current_method: Optional[_MethodBuilder] = None
    pending: Optional[_Pending] = None
    depth = 0

    for index, (code, masked) in enumerate(zip(code_lines, masked_lines)):
        line_no = index + 1
        following = list(zip(
            code_lines[index + 1:index + 1 + MAX_CALL_LINES],
            masked_lines[index + 1:index + 1 + MAX_CALL_LINES],
        ))
        in_method = current_method is not None
        innermost = scopes[-1] if scopes else None

        if in_method:
            current_method.statements.extend(_statements_for(code, masked, line_no, following))
        elif pending is None:
            pending = _declaration(masked, innermost, depth)
            if pending is None and not _is_trivial(code):
                if innermost is not None and innermost.kind == "class":
                    target = synthetic_method(innermost.name, INSTANCE_INIT)
                else:
                    target = synthetic_method(DEFAULT_CLASS, DEFAULT_METHOD)
                target.statements.extend(_statements_for(code, masked, line_no, following))

        for col, ch in enumerate(masked):
            if ch == "{":
                depth += 1
                if pending is not None:
                    scope = _Scope(pending.kind, pending.name, depth, pending.owner)
                    scopes.append(scope)
                    if pending.kind == "method":
                        current_method = _MethodBuilder(owner=pending.owner, name=pending.name)
                        builders.append(current_method)
                        close = _matching_paren(masked, col)
                        rest_end = close if close >= 0 else len(masked)
                        current_method.statements.extend(
                            _statements_for(code[col + 1:rest_end], masked[col + 1:rest_end], line_no)
                        )
                    pending = None
            elif ch == "}":
                if scopes and depth == scopes[-1].body_depth:
                    closed = scopes.pop()
                    if closed.kind == "method" and not any(s.kind == "method" for s in scopes):
                        current_method = None
                depth = max(0, depth - 1)

        if pending is not None and masked.rstrip().endswith(";"):
            # Signature without a body (interface member, overload, abstract)
            pending = None

    methods = []
    for builder in builders:
        signature = f"@{file_name}: {builder.owner}.{builder.name}()"
        methods.append(MemoryMethod(signature=signature, body=builder.statements))
    return methods


def parse_source_file(file_path: Path, relative_name: str) -> list[MemoryMethod]:
    """Parse a source file; an unreadable file yields no methods."""
    try:
        content = file_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning("Could not read %s: %s", file_path, e)
        return []
    return parse_source(content, relative_name)


def load_project(
    project_dir: Path,
    extensions: Iterable[str] = SOURCE_EXTENSIONS,
) -> MemoryProgram:
    """Build a program representation for every source file under ``project_dir``."""
    try:
        sources, manifest_source = discover_sources(project_dir, extensions)
    except (FileNotFoundError, NotADirectoryError) as e:
        raise ProjectLoadError(str(e)) from e

    root = project_dir.resolve()
    methods: list[MemoryMethod] = []
    for rel_path in sources:
        methods.extend(parse_source_file(root / rel_path, rel_path.as_posix()))

    logger.info(
        "Built program from %d %s source file(s): %d method(s)",
        len(sources),
        manifest_source,
        len(methods),
    )
    return MemoryProgram(method_list=methods, root=root)
