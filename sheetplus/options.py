"""Write/read configuration containers and their YAML loaders."""

# Module responsibilities:
# - Hold per-call export/import settings with documented defaults.
# - Load settings from YAML with explicit validation, turning style blocks into CellStyle factories.

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, NotRequired, Optional, Tuple, TypedDict, Union

import yaml

from .errors import OptionsError
from .schema import ExportFormat, ParseMode
from .styles import CellStyle, StyleFactory, StyleRule, TextPredicate, equals


class StyleRuleConfig(TypedDict):
    """Schema for one ``special_rules`` YAML entry."""

    style: Dict[str, Any]
    equals: NotRequired[str]
    pattern: NotRequired[str]


@dataclass(frozen=True)
class WriteOptions:
    """Export settings for one write call."""

    format: ExportFormat = ExportFormat.XLS
    sheet_name: Optional[str] = None
    title: Optional[str] = None
    template: Optional[Union[str, Path]] = None
    start_row: int = 1
    title_style: Optional[StyleFactory] = None
    header_style: Optional[StyleFactory] = None
    column_style: Optional[StyleFactory] = None
    special_rules: Tuple[StyleRule, ...] = ()

    def __post_init__(self) -> None:
        if self.start_row < 0:
            raise OptionsError(f"start_row must be non-negative, got {self.start_row}")
        # Accept any sequence of rules but keep the stored value immutable.
        object.__setattr__(self, "special_rules", tuple(self.special_rules))


@dataclass(frozen=True)
class ReadOptions:
    """Import settings for one read call."""

    parse_mode: ParseMode = ParseMode.EAGER
    sheet_name: Optional[str] = None
    sheet_index: int = 0
    start_row_index: int = 1

    def __post_init__(self) -> None:
        if self.sheet_index < 0:
            raise OptionsError(f"sheet_index must be non-negative, got {self.sheet_index}")
        if self.start_row_index < 0:
            raise OptionsError(f"start_row_index must be non-negative, got {self.start_row_index}")
        if self.parse_mode is ParseMode.STREAMING and self.sheet_name is not None:
            raise OptionsError("Streaming reads select sheets by index; sheet_name is not supported")


_STYLE_KEYS = {f.name for f in fields(CellStyle)}


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise OptionsError(f"Options file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise OptionsError(f"Invalid options YAML: {path}") from exc
    if not isinstance(data, dict):
        raise OptionsError("Options YAML must be a mapping")
    return data


def _enum(enum_type: Any, raw: Any, key: str) -> Any:
    try:
        return enum_type(str(raw).lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_type)
        raise OptionsError(f"{key} must be one of: {allowed}") from exc


def _integer(raw: Any, key: str) -> int:
    if isinstance(raw, bool):
        raise OptionsError(f"{key} must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise OptionsError(f"{key} must be an integer") from exc


def _cell_style(raw: Any, key: str) -> CellStyle:
    if not isinstance(raw, Mapping):
        raise OptionsError(f"{key} must be a mapping")
    if unknown := set(raw) - _STYLE_KEYS:
        raise OptionsError(f"{key} has unknown keys: {', '.join(sorted(unknown))}")
    return CellStyle(**raw)


def _predicate(entry: Mapping[str, Any], position: int) -> TextPredicate:
    if "equals" in entry:
        return equals(str(entry["equals"]))
    if "pattern" in entry:
        try:
            compiled = re.compile(str(entry["pattern"]))
        except re.error as exc:
            raise OptionsError(f"special_rules[{position}].pattern is invalid") from exc
        return lambda text: compiled.search(text) is not None
    raise OptionsError(f"special_rules[{position}] needs 'equals' or 'pattern'")


def _special_rules(raw: Any) -> Tuple[StyleRule, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise OptionsError("special_rules must be a list")
    rules = []
    for position, entry in enumerate(raw):
        if not isinstance(entry, Mapping) or "style" not in entry:
            raise OptionsError(f"special_rules[{position}] needs a 'style' mapping")
        rule: StyleRuleConfig = dict(entry)  # type: ignore[assignment]
        rules.append(
            StyleRule(
                predicate=_predicate(rule, position),
                style=_cell_style(rule["style"], f"special_rules[{position}].style"),
            )
        )
    return tuple(rules)


def load_write_options(path: Path) -> WriteOptions:
    """Load :class:`WriteOptions` from YAML.

    Recognized keys: ``format``, ``sheet_name``, ``title``, ``template``, ``start_row``,
    ``title_style``, ``header_style``, ``column_style`` and ``special_rules``.
    """

    payload = _load_yaml(path)
    kwargs: Dict[str, Any] = {}
    if "format" in payload:
        kwargs["format"] = _enum(ExportFormat, payload["format"], "format")
    for key in ("sheet_name", "title"):
        if payload.get(key) is not None:
            kwargs[key] = str(payload[key])
    if payload.get("template"):
        template = Path(str(payload["template"]))
        kwargs["template"] = template if template.is_absolute() else path.parent / template
    if payload.get("start_row") is not None:
        kwargs["start_row"] = _integer(payload["start_row"], "start_row")
    for key in ("title_style", "header_style", "column_style"):
        if payload.get(key) is not None:
            kwargs[key] = _cell_style(payload[key], key)
    kwargs["special_rules"] = _special_rules(payload.get("special_rules"))
    return WriteOptions(**kwargs)


def load_read_options(path: Path) -> ReadOptions:
    """Load :class:`ReadOptions` from YAML."""

    payload = _load_yaml(path)
    kwargs: Dict[str, Any] = {}
    if "parse_mode" in payload:
        kwargs["parse_mode"] = _enum(ParseMode, payload["parse_mode"], "parse_mode")
    if payload.get("sheet_name") is not None:
        kwargs["sheet_name"] = str(payload["sheet_name"])
    for key in ("sheet_index", "start_row_index"):
        if payload.get(key) is not None:
            kwargs[key] = _integer(payload[key], key)
    return ReadOptions(**kwargs)
