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

"""Project configuration for a scan.

Two formats are accepted:
- ``capcheck.yaml``: ``project_dir``, ``project_name``, ``catalog``,
  ``extensions``, ``program_dump``
- an analysis-framework scene config (JSON) with ``targetProjectDirectory``
  and ``targetProjectName``

Relative paths resolve against the config file's directory. A config
that cannot be read or parsed is fatal for the run (ProjectLoadError).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from capcheck.models.program import ProjectLoadError
from capcheck.providers.coordinator import SOURCE_EXTENSIONS

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "capcheck.yaml"


class ScanConfig(BaseModel):
    """Resolved configuration for one analysis run."""

    project_dir: Path = Path(".")
    project_name: str = ""
    catalog_path: Optional[Path] = None
    extensions: list[str] = Field(default_factory=lambda: list(SOURCE_EXTENSIONS))
    program_dump: Optional[Path] = None

    @property
    def display_name(self) -> str:
        return self.project_name or self.project_dir.resolve().name


def _resolve(base: Path, value: Optional[str]) -> Optional[Path]:
    if not value:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else (base / path)


def _from_scene_config(data: dict[str, Any], base: Path) -> ScanConfig:
    project_dir = _resolve(base, data.get("targetProjectDirectory"))
    if project_dir is None:
        raise ProjectLoadError("scene config is missing 'targetProjectDirectory'")
    return ScanConfig(
        project_dir=project_dir,
        project_name=data.get("targetProjectName") or "",
    )


def _from_yaml_config(data: dict[str, Any], base: Path) -> ScanConfig:
    values: dict[str, Any] = {
        "project_dir": _resolve(base, data.get("project_dir")) or base,
        "project_name": data.get("project_name") or "",
        "catalog_path": _resolve(base, data.get("catalog")),
        "program_dump": _resolve(base, data.get("program_dump")),
    }
    if data.get("extensions"):
        values["extensions"] = list(data["extensions"])
    return ScanConfig(**values)


def load_config(path: str | Path) -> ScanConfig:
    """Load a scan config from YAML or a JSON scene config."""
    source = Path(path)
    base = source.resolve().parent
    try:
        text = source.read_text(encoding="utf-8")
        if source.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ProjectLoadError(f"could not load config {source}: {e}") from e

    if not isinstance(data, dict):
        raise ProjectLoadError(f"config {source} must be a mapping")

    try:
        if "targetProjectDirectory" in data:
            config = _from_scene_config(data, base)
        else:
            config = _from_yaml_config(data, base)
    except ValidationError as e:
        raise ProjectLoadError(f"invalid config {source}: {e}") from e

    logger.debug("Loaded config from %s: %s", source, config)
    return config


def find_config(project_dir: Path) -> Optional[Path]:
    """Return ``<project_dir>/capcheck.yaml`` if present."""
    candidate = project_dir / CONFIG_FILE_NAME
    return candidate if candidate.is_file() else None
