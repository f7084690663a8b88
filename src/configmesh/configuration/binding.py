"""
Typed binding of snapshots onto configuration objects.

A configuration object is a dataclass or pydantic model instance. Fields carry
two tags: ``env`` names the snapshot key and ``default`` supplies a fallback
literal. For dataclasses the tags live in the field metadata under
``configmesh`` (see ``env_field``); for pydantic models they live in ``json_schema_extra``::

    @dataclass
    class CacheConfig:
        ttl: timedelta = env_field("CACHE_TTL", default="5m", zero=timedelta(0))

    class ServiceConfig(BaseModel):
        name: str = Field("", json_schema_extra={"env": "SERVICE_NAME", "default": "app"})
"""

import dataclasses
import re
import types
from datetime import timedelta
from fractions import Fraction
from typing import Annotated, Any, Dict, Iterator, List, Mapping, Tuple, Union, get_args, get_origin, get_type_hints

from pydantic import BaseModel, NonNegativeInt, ValidationError

from ..infrastructure.exceptions import BindingError

ENV_TAG = "env"
DEFAULT_TAG = "default"
# dataclass field metadata key holding the tags
TAGS_METADATA_KEY = "configmesh"

# Unsigned integer fields: digits only, no sign
UInt = NonNegativeInt

_INT_RE = re.compile(r"[+-]?[0-9]+")
_UINT_RE = re.compile(r"[0-9]+")
_TRUE_LITERALS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_LITERALS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_NANOSECOND = 1
_MICROSECOND = 1000 * _NANOSECOND
_MILLISECOND = 1000 * _MICROSECOND
_SECOND = 1000 * _MILLISECOND
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE

_DURATION_UNITS = {
    "ns": _NANOSECOND,
    "us": _MICROSECOND,
    "µs": _MICROSECOND,  # micro sign
    "μs": _MICROSECOND,  # greek mu
    "ms": _MILLISECOND,
    "s": _SECOND,
    "m": _MINUTE,
    "h": _HOUR,
}
_DURATION_PART_RE = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")


def env_field(key: str, default: Any = None, *, zero: Any = dataclasses.MISSING,
              default_factory: Any = dataclasses.MISSING, **kwargs) -> Any:
    """
    Declare a dataclass field bound to snapshot key ``key``.

    Args:
        key: snapshot key looked up during binding
        default: fallback literal used when the key is missing or empty
        zero: python default of the field (what a freshly built object holds)
        default_factory: alternative to ``zero`` for mutable defaults
    """
    tags = {ENV_TAG: key}
    if default is not None:
        tags[DEFAULT_TAG] = default if isinstance(default, str) else str(default)
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[TAGS_METADATA_KEY] = tags
    return dataclasses.field(default=zero, default_factory=default_factory, metadata=metadata, **kwargs)


def parse_duration(text: str) -> timedelta:
    """
    Parse a duration literal such as ``"300ms"``, ``"1h30m"`` or ``"-1.5h"``.

    Valid units are ns, us (or µs), ms, s, m, h. A bare ``"0"`` is accepted.
    Sub-microsecond precision is rounded away by ``timedelta``.

    Raises:
        ValueError: malformed literal
    """
    original = text
    sign = 1
    if text[:1] in ("+", "-"):
        if text[0] == "-":
            sign = -1
        text = text[1:]

    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {original!r}")

    total = Fraction(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_PART_RE.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {original!r}")
        number, unit = match.groups()
        if number.startswith("."):
            number = "0" + number
        if number.endswith("."):
            number += "0"
        total += Fraction(number) * _DURATION_UNITS[unit]
        pos = match.end()

    return timedelta(microseconds=float(sign * total / _MICROSECOND))


def format_duration(value: timedelta) -> str:
    """Render a timedelta as a duration literal, e.g. ``timedelta(minutes=5)`` -> ``"5m0s"``."""
    micros = value // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)

    if micros < 1_000_000:
        if micros % 1000 == 0:
            return f"{sign}{micros // 1000}ms"
        return f"{sign}{micros}µs"

    hours, rem = divmod(micros, 3600 * 1_000_000)
    minutes, rem = divmod(rem, 60 * 1_000_000)
    seconds, fraction = divmod(rem, 1_000_000)

    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    out += str(seconds)
    if fraction:
        out += f".{fraction:06d}".rstrip("0")
    return out + "s"


def is_bindable(obj: Any) -> bool:
    """True for dataclass instances and pydantic model instances."""
    if isinstance(obj, BaseModel):
        return True
    return dataclasses.is_dataclass(obj) and not isinstance(obj, type)


def bind(target: Any, snapshot: Mapping[str, str]) -> None:
    """
    Project ``snapshot`` onto ``target`` in place.

    Nested configuration objects are walked with the same snapshot (keys are
    not prefixed). A field without an ``env`` tag is left untouched, as is a
    tagged field whose key is missing or empty and which has no default.

    Raises:
        BindingError: invalid target, unsupported field type, or a value that
            cannot be parsed; the first failure aborts the whole call
    """
    if target is None or not is_bindable(target):
        raise BindingError("target must be a dataclass or pydantic model instance",
                           context={"target_type": type(target).__name__})
    _bind_object(target, snapshot, type(target).__name__)


def _bind_object(target: Any, snapshot: Mapping[str, str], path: str) -> None:
    for name, tags, annotation, extra_metadata in _iter_fields(target):
        field_path = f"{path}.{name}"
        current = getattr(target, name, None)

        if is_bindable(current):
            _bind_object(current, snapshot, field_path)
            continue

        key = tags.get(ENV_TAG)
        if not key:
            continue

        raw = snapshot.get(key, "")
        if raw == "":
            raw = tags.get(DEFAULT_TAG, "")
        if raw == "":
            continue

        value = coerce_value(annotation, raw, field_path, extra_metadata)
        try:
            setattr(target, name, value)
        except (AttributeError, TypeError, ValueError, ValidationError) as e:
            raise BindingError(f"failed to set field {field_path}: {e}",
                               field_path=field_path, value=raw, cause=e) from e


def _iter_fields(target: Any) -> Iterator[Tuple[str, Dict[str, Any], Any, List[Any]]]:
    if isinstance(target, BaseModel):
        for name, info in type(target).model_fields.items():
            extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
            yield name, extra, info.annotation, list(info.metadata)
        return

    try:
        hints = get_type_hints(type(target), include_extras=True)
    except (NameError, TypeError):
        hints = {}
    for f in dataclasses.fields(target):
        yield f.name, dict(f.metadata.get(TAGS_METADATA_KEY) or {}), hints.get(f.name, f.type), []


def _is_unsigned_marker(marker: Any) -> bool:
    ge = getattr(marker, "ge", None)
    if isinstance(ge, (int, float)) and not isinstance(ge, bool) and ge >= 0:
        return True
    gt = getattr(marker, "gt", None)
    if isinstance(gt, (int, float)) and not isinstance(gt, bool) and gt >= 0:
        return True
    return any(_is_unsigned_marker(m) for m in getattr(marker, "metadata", None) or ())


def _resolve_annotation(annotation: Any, extra_metadata: List[Any]) -> Tuple[Any, bool]:
    unsigned = any(_is_unsigned_marker(m) for m in extra_metadata)
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            base, *metadata = get_args(annotation)
            unsigned = unsigned or any(_is_unsigned_marker(m) for m in metadata)
            annotation = base
            continue
        if origin is Union or origin is types.UnionType:
            args = [a for a in get_args(annotation) if a is not type(None)]
            if len(args) == 1:
                annotation = args[0]
                continue
        return annotation, unsigned


def coerce_value(annotation: Any, raw: str, field_path: str = "", extra_metadata: Any = ()) -> Any:
    """Convert ``raw`` to the python type named by ``annotation``."""
    target_type, unsigned = _resolve_annotation(annotation, list(extra_metadata or ()))

    try:
        if target_type is str:
            return raw
        if target_type is bool:
            if raw in _TRUE_LITERALS:
                return True
            if raw in _FALSE_LITERALS:
                return False
            raise ValueError(f"invalid boolean {raw!r}")
        if target_type is int:
            pattern = _UINT_RE if unsigned else _INT_RE
            if not pattern.fullmatch(raw):
                kind = "unsigned integer" if unsigned else "integer"
                raise ValueError(f"invalid {kind} {raw!r}")
            return int(raw, 10)
        if target_type is float:
            if "_" in raw or raw != raw.strip():
                raise ValueError(f"invalid float {raw!r}")
            return float(raw)
        if target_type is timedelta:
            return parse_duration(raw)
    except ValueError as e:
        raise BindingError(f"failed to set field {field_path}: {e}",
                           field_path=field_path, value=raw, cause=e) from e

    raise BindingError(f"failed to set field {field_path}: unsupported field type {target_type!r}",
                       field_path=field_path, value=raw)
