from __future__ import annotations

from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import tomllib

from llrtrace.analysis.matcher import DedupeMode
from llrtrace.analysis.scan import DEFAULT_EXTENSIONS, ScanOptions
from llrtrace.analysis.tag_parser import (
    DEFAULT_CROSS_REFERENCE_MARKER,
    DEFAULT_IMPLEMENTS_MARKER,
    DEFAULT_REQUIREMENT_PATTERN,
    TagSyntax,
)
from llrtrace.exceptions import ConfigurationError

DEFAULT_CONFIG_NAME = "llrtrace.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def _section(data: TomlTable, name: str) -> TomlTable:
    section = data.get(name, {})
    return section if isinstance(section, dict) else {}


def markers_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "markers")


def scan_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "scan")


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _as_bool(value: TomlValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _as_str(value: TomlValue, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _as_jobs(value: TomlValue) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"scan.jobs must be an integer, got {value!r}")
    if value < 1:
        raise ConfigurationError(f"scan.jobs must be at least 1, got {value}")
    return value


def _as_dedupe(value: TomlValue) -> DedupeMode:
    if value is None:
        return DedupeMode.LOCATION
    try:
        return DedupeMode(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(mode.value for mode in DedupeMode)
        raise ConfigurationError(
            f"scan.dedupe must be one of {allowed}, got {value!r}"
        ) from exc


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def tag_syntax(section: TomlTable | None) -> TagSyntax:
    if not isinstance(section, dict):
        section = {}
    return TagSyntax(
        implements=_as_str(section.get("implements"), DEFAULT_IMPLEMENTS_MARKER),
        cross_reference=_as_str(
            section.get("cross_reference"), DEFAULT_CROSS_REFERENCE_MARKER
        ),
        requirement_pattern=_as_str(
            section.get("requirement_pattern"), DEFAULT_REQUIREMENT_PATTERN
        ),
    )


def scan_options(
    root: Path | None = None,
    config_path: Path | None = None,
    *,
    overrides: TomlTable | None = None,
) -> ScanOptions:
    """Build scan options from ``llrtrace.toml`` with explicit overrides.

    ``overrides`` uses the keys of the ``[scan]`` section; ``None`` values
    leave the file value in place.
    """
    data = load_config(root=root, config_path=config_path)
    scan = merge_payload(overrides or {}, _section(data, "scan"))
    extensions = _normalize_name_list(scan.get("extensions")) or list(DEFAULT_EXTENSIONS)
    return ScanOptions(
        syntax=tag_syntax(_section(data, "markers")),
        frontend=_as_str(scan.get("frontend"), "tree-sitter"),
        extensions=tuple(
            ext if ext.startswith(".") else f".{ext}" for ext in extensions
        ),
        exclude=tuple(_normalize_name_list(scan.get("exclude"))),
        jobs=_as_jobs(scan.get("jobs")),
        dedupe=_as_dedupe(scan.get("dedupe")),
        require_tags=_as_bool(scan.get("require_tags", True)),
    )
