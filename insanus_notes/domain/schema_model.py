from __future__ import annotations

import math
import re
import uuid
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from .exceptions import ValidationSkip


class PropertyType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"
    RELATION = "relation"


_LEGACY_TYPE_NAMES = {"bool": PropertyType.BOOLEAN}

_FALSE_STRINGS = {"", "false", "0"}

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_property_type(raw: Any) -> PropertyType | None:
    if not isinstance(raw, str):
        return None
    name = raw.strip().lower()
    if name in _LEGACY_TYPE_NAMES:
        return _LEGACY_TYPE_NAMES[name]
    try:
        return PropertyType(name)
    except ValueError:
        return None


@dataclass(frozen=True)
class PropertyDefinition:
    id: str
    name: str
    type: PropertyType
    options: tuple[str, ...] | None = None
    relation_collection_id: str | None = None

    def __post_init__(self) -> None:
        if self.type is PropertyType.SELECT and self.options is None:
            object.__setattr__(self, "options", ())
        if self.type is not PropertyType.SELECT and self.options is not None:
            object.__setattr__(self, "options", None)
        if self.type is not PropertyType.RELATION and self.relation_collection_id is not None:
            object.__setattr__(self, "relation_collection_id", None)

    @classmethod
    def from_raw(cls, raw: Any) -> PropertyDefinition | None:
        if not isinstance(raw, dict):
            return None
        def_id = raw.get("id")
        if not isinstance(def_id, str) or not def_id:
            return None
        name = raw.get("name")
        prop_type = parse_property_type(raw.get("type")) or PropertyType.TEXT
        options = None
        if prop_type is PropertyType.SELECT:
            raw_options = raw.get("options")
            options = tuple(o for o in raw_options if isinstance(o, str)) if isinstance(raw_options, list) else ()
        relation = raw.get("relation_collection_id")
        return cls(
            id=def_id,
            name=name if isinstance(name, str) else "",
            type=prop_type,
            options=options,
            relation_collection_id=relation if isinstance(relation, str) and relation else None,
        )

    def to_raw(self) -> dict:
        data: dict[str, Any] = {"id": self.id, "name": self.name, "type": self.type.value}
        if self.type is PropertyType.SELECT:
            data["options"] = list(self.options or ())
        if self.type is PropertyType.RELATION:
            data["relation_collection_id"] = self.relation_collection_id
        return data


def parse_schema(raw: Any) -> tuple[PropertyDefinition, ...]:
    if not isinstance(raw, list):
        return ()
    seen: set[str] = set()
    out: list[PropertyDefinition] = []
    for item in raw:
        definition = PropertyDefinition.from_raw(item)
        if definition is None or definition.id in seen:
            continue
        seen.add(definition.id)
        out.append(definition)
    return tuple(out)


def schema_to_raw(schema: tuple[PropertyDefinition, ...] | list[PropertyDefinition]) -> list[dict]:
    return [d.to_raw() for d in schema]


def parse_options(options_text: str) -> tuple[str, ...]:
    return tuple(o.strip() for o in options_text.split(",") if o.strip())


def new_definition(
    name: str,
    prop_type: PropertyType | str,
    options_text: str = "",
    relation_collection_id: str | None = None,
) -> PropertyDefinition:
    trimmed = name.strip()
    if not trimmed:
        raise ValidationSkip("property_name_empty")
    resolved = prop_type if isinstance(prop_type, PropertyType) else parse_property_type(prop_type)
    if resolved is None:
        raise ValidationSkip("property_type_unknown")
    return PropertyDefinition(
        id=str(uuid.uuid4()),
        name=trimmed,
        type=resolved,
        options=parse_options(options_text) if resolved is PropertyType.SELECT else None,
        relation_collection_id=relation_collection_id or None,
    )


def _display_string(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, bool):
        return ""
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, float):
        if not math.isfinite(raw):
            return ""
        return str(int(raw)) if raw.is_integer() else str(raw)
    return ""


def _relation_ids(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [v for v in raw if isinstance(v, str) and v]


def coerce_for_edit(prop_type: PropertyType, raw: Any) -> str | bool | list[str]:
    """Turn a stored value into the value an edit control works with.

    Never raises: unexpected shapes degrade to the type's zero value
    (``False``, ``[]`` or ``""``).
    """
    if prop_type is PropertyType.BOOLEAN:
        if isinstance(raw, str):
            return raw.strip().lower() not in _FALSE_STRINGS
        return bool(raw)
    if prop_type is PropertyType.RELATION:
        return _relation_ids(raw)
    return _display_string(raw)


def dedupe_ids(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def validate_value(definition: PropertyDefinition, value: Any) -> str | bool | list[str]:
    """Coerce an edited value for storage, raising ValidationSkip when it cannot fit the type."""
    if definition.type is PropertyType.BOOLEAN:
        return bool(coerce_for_edit(PropertyType.BOOLEAN, value))
    if definition.type is PropertyType.RELATION:
        if not isinstance(value, list):
            raise ValidationSkip("relation_value_not_list")
        return dedupe_ids(_relation_ids(value))

    text = _display_string(value)
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise ValidationSkip("value_not_scalar")
    if text == "":
        return ""
    if definition.type is PropertyType.NUMBER:
        try:
            number = float(text)
        except ValueError as e:
            raise ValidationSkip("number_invalid") from e
        if not math.isfinite(number):
            raise ValidationSkip("number_invalid")
    elif definition.type is PropertyType.DATE:
        if not _ISO_DATE_RE.match(text):
            raise ValidationSkip("date_invalid")
        try:
            date.fromisoformat(text)
        except ValueError as e:
            raise ValidationSkip("date_invalid") from e
    elif definition.type is PropertyType.SELECT:
        if text not in (definition.options or ()):
            raise ValidationSkip("select_option_unknown")
    return text
