"""Load the list of group names to export."""

from __future__ import annotations

import csv
import logging
from pathlib import Path

import yaml

from .errors import ConfigError, FatalPreconditionError
from .models import GroupRequest

logger = logging.getLogger(__name__)

# Accepted header names for the group-name column, compared case-insensitively
NAME_COLUMNS = ("groupname", "group_name", "group", "displayname", "name")


def load_group_requests(path: str | Path) -> list[GroupRequest]:
    """Load group names from a CSV, YAML or plain-text file.

    Auto-detects format by file extension. Names are trimmed and blank
    entries dropped; a file with no usable names is a fatal precondition.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        names = _load_yaml_names(path)
    elif suffix == ".csv":
        names = _load_csv_names(path)
    elif suffix in (".txt", ".lst"):
        names = _load_text_names(path)
    else:
        raise ConfigError(
            f"Unsupported input file extension: {str(path)!r}. Use .csv, .yaml or .txt"
        )

    requests = [GroupRequest(n) for n in names if n and n.strip()]
    if not requests:
        raise FatalPreconditionError(f"Error: no input - no group names found in {path}")
    return requests


def _load_csv_names(path: Path) -> list[str]:
    # utf-8-sig strips the BOM spreadsheet exports tend to add
    with open(path, newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            raise ConfigError(f"CSV file is empty or has no header: {path}")

        by_lower = {h.strip().lower(): h for h in reader.fieldnames if h}
        column = next((by_lower[c] for c in NAME_COLUMNS if c in by_lower), None)
        if column is None:
            raise ConfigError(
                f"CSV missing a group name column (one of {', '.join(NAME_COLUMNS)}) in {path}"
            )

        names: list[str] = []
        for row_num, row in enumerate(reader, start=2):
            value = (row.get(column) or "").strip()
            if not value:
                logger.warning("Skipping CSV row %d: empty group name", row_num)
                continue
            names.append(value)
    return names


def _load_yaml_names(path: Path) -> list[str]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict) or "groups" not in data:
        raise ConfigError(f"YAML input must contain a top-level 'groups' key: {path}")
    raw_groups = data["groups"]
    if not isinstance(raw_groups, list):
        raise ConfigError(f"'groups' must be a list in {path}")

    names: list[str] = []
    for i, entry in enumerate(raw_groups):
        if isinstance(entry, str):
            name = entry
        elif isinstance(entry, dict):
            name = str(entry.get("name") or "")
        else:
            raise ConfigError(f"Group entry {i} must be a string or mapping in {path}")
        if not name.strip():
            logger.warning("Skipping group entry %d: empty name", i)
            continue
        names.append(name.strip())
    return names


def _load_text_names(path: Path) -> list[str]:
    names: list[str] = []
    with open(path, encoding="utf-8-sig") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                names.append(line)
    return names
