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

"""Capability catalog: API name -> required SystemCapability.

The catalog is plain data. The bundled default lives in
``rules/default_catalog.yaml``; larger catalogs are generated from the
platform's API spreadsheet export with ``capcheck catalog import``.

Used at:
- Scan time: deciding whether a callee is a target API, and which
  capability it requires
- Import time: turning spreadsheet rows into a catalog file
"""

from __future__ import annotations

import csv
import json
import logging
import zipfile
from collections import Counter
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional, Sequence

import yaml
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent.parent / "rules" / "default_catalog.yaml"

# Spreadsheet export columns (0-based): method name and SysCap
NAME_COLUMN = 2
CAPABILITY_COLUMN = 5

WORKBOOK_SUFFIXES = (".xlsx", ".xlsm")


class CatalogError(Exception):
    """A catalog file is missing or malformed."""


class CapabilityCatalog:
    """Static name -> required capability lookup table."""

    def __init__(self, mapping: Mapping[str, str] | None = None) -> None:
        self._mapping: dict[str, str] = dict(mapping or {})

    def lookup(self, name: str) -> Optional[str]:
        """Return the capability required by ``name``, or None if not a catalog API."""
        return self._mapping.get(name)

    def capability_counts(self) -> list[tuple[str, int]]:
        """Number of APIs per capability, most common first (ties by name)."""
        counts = Counter(self._mapping.values())
        return sorted(counts.items(), key=lambda item: (-item[1], item[0]))

    def __contains__(self, name: object) -> bool:
        return name in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __repr__(self) -> str:
        return f"CapabilityCatalog({len(self._mapping)} APIs)"


def _validate_mapping(data: object, source: Path) -> dict[str, str]:
    if not isinstance(data, dict):
        raise CatalogError(f"{source}: expected a mapping of API name to capability")
    mapping: dict[str, str] = {}
    for name, capability in data.items():
        if not isinstance(name, str) or not isinstance(capability, str):
            raise CatalogError(f"{source}: invalid entry {name!r}: {capability!r}")
        mapping[name] = capability
    return mapping


def load_catalog(path: str | Path) -> CapabilityCatalog:
    """Load a catalog from YAML (``apis:`` mapping) or JSON (flat object)."""
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(f"Could not read catalog {source}: {e}") from e

    try:
        if source.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
            if isinstance(data, dict) and "apis" in data:
                data = data["apis"] or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise CatalogError(f"Malformed catalog {source}: {e}") from e

    catalog = CapabilityCatalog(_validate_mapping(data, source))
    logger.debug("Loaded %d catalog entries from %s", len(catalog), source)
    return catalog


# Module-level cache
_default_catalog: CapabilityCatalog | None = None


def default_catalog() -> CapabilityCatalog:
    """Return the bundled catalog (cached after first load)."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = load_catalog(DEFAULT_CATALOG_PATH)
    return _default_catalog


def _is_valid_api_name(name: str) -> bool:
    """Spreadsheet rows carry prose and signatures too; keep plain identifiers."""
    return " " not in name and not name.startswith("(") and len(name) > 1


def read_spreadsheet_rows(path: str | Path) -> list[tuple[object, ...]]:
    """Read every row of the API spreadsheet.

    Workbooks (``.xlsx``) are read from their active sheet; anything else is
    parsed as CSV.
    """
    source = Path(path)
    try:
        if source.suffix.lower() in WORKBOOK_SUFFIXES:
            workbook = load_workbook(source, read_only=True, data_only=True)
            try:
                rows = list(workbook.active.iter_rows(values_only=True))
            finally:
                workbook.close()
        else:
            with open(source, newline="", encoding="utf-8-sig") as f:
                rows = [tuple(row) for row in csv.reader(f)]
    except (OSError, InvalidFileException, zipfile.BadZipFile, csv.Error) as e:
        raise CatalogError(f"Could not read spreadsheet {source}: {e}") from e

    logger.debug("Read %d spreadsheet rows from %s", len(rows), source)
    return rows


def rows_to_mapping(
    rows: Iterable[Sequence[object]],
    name_column: int = NAME_COLUMN,
    capability_column: int = CAPABILITY_COLUMN,
) -> dict[str, str]:
    """Convert exported spreadsheet rows to an API -> capability mapping.

    The first row is the header and is skipped. Later rows override earlier
    rows for the same API name.
    """
    mapping: dict[str, str] = {}
    for index, row in enumerate(rows):
        if index == 0:
            continue
        if len(row) <= max(name_column, capability_column):
            continue
        name = str(row[name_column] or "").strip()
        capability = str(row[capability_column] or "").strip()
        if not name or not capability:
            continue
        if _is_valid_api_name(name):
            mapping[name] = capability
    return mapping


def write_catalog(mapping: Mapping[str, str], output_path: Path) -> None:
    """Write a catalog as YAML, sorted by API name."""
    data = {"apis": {name: mapping[name] for name in sorted(mapping)}}
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8", newline="\n") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    logger.info("Wrote catalog (%d APIs) to %s", len(mapping), output_path)
