"""Runtime settings and extraction configuration loading."""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Any, Mapping

from xpathfeed.extraction.errors import ConfigIssue, ConfigurationError
from xpathfeed.extraction.models import FIELD_KEY_PREFIX, ExtractionContext, FieldSpec


DEFAULT_BATCH_SIZE = 50
DEFAULT_STATE_DB_PATH = ".xpathfeed-state.db"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_positive_int(*, name: str, raw_value: str, minimum: int = 1) -> int:
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}")
    return value


def _parse_bool(*, name: str, raw_value: str) -> bool:
    normalized = raw_value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag")


@dataclass(frozen=True, slots=True)
class ExtractorSettings:
    """Validated host settings for extraction runs."""

    batch_size: int = DEFAULT_BATCH_SIZE
    state_db_path: Path = Path(DEFAULT_STATE_DB_PATH)
    show_errors: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ExtractorSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        batch_raw = source.get("XPATHFEED_BATCH_SIZE", str(DEFAULT_BATCH_SIZE)).strip()
        state_db_raw = source.get("XPATHFEED_STATE_DB", DEFAULT_STATE_DB_PATH).strip()
        show_errors_raw = source.get("XPATHFEED_SHOW_ERRORS", "false")

        if not batch_raw:
            raise ConfigurationError("XPATHFEED_BATCH_SIZE cannot be empty")
        if not state_db_raw:
            raise ConfigurationError("XPATHFEED_STATE_DB cannot be empty")

        return cls(
            batch_size=_parse_positive_int(name="XPATHFEED_BATCH_SIZE", raw_value=batch_raw),
            state_db_path=Path(state_db_raw),
            show_errors=_parse_bool(name="XPATHFEED_SHOW_ERRORS", raw_value=show_errors_raw),
        )


def next_field_key(keys: list[str]) -> str:
    """Allocate the key after the highest ``xpathparser:<n>`` index in use."""

    indexes = [
        int(key[len(FIELD_KEY_PREFIX) :])
        for key in keys
        if key.startswith(FIELD_KEY_PREFIX) and key[len(FIELD_KEY_PREFIX) :].isdigit()
    ]
    if not indexes:
        return f"{FIELD_KEY_PREFIX}0"
    return f"{FIELD_KEY_PREFIX}{max(indexes) + 1}"


def _fields_from_list(items: list[Any]) -> list[FieldSpec]:
    fields: list[FieldSpec] = []
    issues: list[ConfigIssue] = []
    explicit_keys = [str(item["key"]).strip() for item in items if isinstance(item, dict) and item.get("key")]
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            issues.append(ConfigIssue(f"fields[{index}]", "field entry must be an object"))
            continue
        target = str(item.get("target") or "").strip()
        if not target:
            issues.append(ConfigIssue(f"fields[{index}]", "field target cannot be empty"))
            continue
        key = str(item.get("key") or "").strip() or next_field_key([spec.key for spec in fields] + explicit_keys)
        if any(spec.key == key for spec in fields):
            issues.append(ConfigIssue(f"fields[{index}]", f"duplicate field key {key}"))
            continue
        fields.append(
            FieldSpec(
                key=key,
                target=target,
                query=str(item.get("query") or "").strip(),
                raw=bool(item.get("raw", False)),
                debug=bool(item.get("debug", False)),
                unique=bool(item.get("unique", False)),
            )
        )
    if issues:
        raise ConfigurationError("Invalid field configuration", issues=issues)
    return fields


def context_from_dict(
    data: Mapping[str, Any],
    *,
    batch_size: int | None = None,
    default_batch_size: int = DEFAULT_BATCH_SIZE,
) -> ExtractionContext:
    """Build an :class:`ExtractionContext` from a decoded JSON mapping."""

    context = str(data.get("context") or "").strip()
    if not context:
        raise ConfigurationError("Context query cannot be empty", issues=[ConfigIssue("context", "required")])

    raw_fields = data.get("fields", [])
    if not isinstance(raw_fields, list):
        raise ConfigurationError("fields must be a list")

    debug = data.get("debug", [])
    if isinstance(debug, str):
        debug = [debug]

    size = batch_size if batch_size is not None else data.get("batch_size", default_batch_size)
    try:
        return ExtractionContext(
            context=context,
            fields=_fields_from_list(raw_fields),
            show_errors=bool(data.get("show_errors", False)),
            debug_keys=frozenset(str(key) for key in debug),
            batch_size=int(size),
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def load_context_config(
    path: str | Path,
    *,
    batch_size: int | None = None,
    default_batch_size: int = DEFAULT_BATCH_SIZE,
) -> ExtractionContext:
    config_path = Path(path)
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Failed to read config file: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Config file is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a JSON object")
    return context_from_dict(data, batch_size=batch_size, default_batch_size=default_batch_size)


def context_to_dict(config: ExtractionContext) -> dict[str, Any]:
    return {
        "context": config.context,
        "fields": [
            {
                "key": spec.key,
                "target": spec.target,
                "query": spec.query,
                "raw": spec.raw,
                "debug": spec.debug,
                "unique": spec.unique,
            }
            for spec in config.fields
        ],
        "show_errors": config.show_errors,
        "debug": sorted(config.debug_keys),
        "batch_size": config.batch_size,
    }


def resolve_config(
    defaults: ExtractionContext,
    override: Mapping[str, Any] | None,
    *,
    allow_override: bool = True,
) -> ExtractionContext:
    """Apply a per-source override on top of importer defaults.

    An override identical to the defaults, or any override while overriding
    is disabled, inherits the defaults unchanged.
    """

    if not override or not allow_override:
        return defaults

    base = context_to_dict(defaults)
    merged = {**base, **{key: value for key, value in override.items() if value is not None}}
    if merged == base:
        return defaults
    return context_from_dict(merged)
