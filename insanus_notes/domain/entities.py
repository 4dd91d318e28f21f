from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Union

from .content import NoteContent
from .schema_model import PropertyDefinition, parse_schema, schema_to_raw

FREEFORM_PROPERTY_TYPES = ("text", "number", "date", "status")


@dataclass(frozen=True)
class Property:
    id: str
    note_id: str | None
    label: str
    type: str
    value: str

    @classmethod
    def from_raw(cls, raw: Any) -> Property | None:
        if not isinstance(raw, dict):
            return None
        prop_id = raw.get("id")
        if not isinstance(prop_id, str) or not prop_id:
            return None
        label = raw.get("label")
        value_type = raw.get("value_type", raw.get("type"))
        value = raw.get("value")
        note_id = raw.get("page_id", raw.get("note_id"))
        return cls(
            id=prop_id,
            note_id=note_id if isinstance(note_id, str) else None,
            label=label if isinstance(label, str) else "",
            type=value_type if value_type in FREEFORM_PROPERTY_TYPES else "text",
            value=value if isinstance(value, str) else "",
        )

    def to_raw(self) -> dict:
        return {"id": self.id, "page_id": self.note_id, "label": self.label, "value_type": self.type, "value": self.value}


@dataclass(frozen=True)
class FreeformProperties:
    items: tuple[Property, ...] = ()

    def find(self, property_id: str) -> Property | None:
        for prop in self.items:
            if prop.id == property_id:
                return prop
        return None

    def with_value(self, property_id: str, value: str) -> FreeformProperties:
        return FreeformProperties(tuple(replace(p, value=value) if p.id == property_id else p for p in self.items))

    def prepended(self, prop: Property) -> FreeformProperties:
        return FreeformProperties((prop,) + self.items)

    def to_raw(self) -> list[dict]:
        return [p.to_raw() for p in self.items]


@dataclass(frozen=True)
class BoundProperties:
    values: dict = field(default_factory=dict)

    def get(self, definition_id: str) -> Any:
        return self.values.get(definition_id)

    def with_value(self, definition_id: str, value: Any) -> BoundProperties:
        merged = dict(self.values)
        merged[definition_id] = value
        return BoundProperties(merged)

    def to_raw(self) -> dict:
        return dict(self.values)


NoteProperties = Union[FreeformProperties, BoundProperties]


def properties_from_raw(raw: Any, collection_id: str | None) -> NoteProperties:
    """Build the properties variant matching the note's collection membership.

    Malformed input becomes the empty value of the expected variant.
    """
    if collection_id is None:
        if not isinstance(raw, list):
            return FreeformProperties()
        items = [p for p in (Property.from_raw(item) for item in raw) if p is not None]
        return FreeformProperties(tuple(items))
    if not isinstance(raw, dict):
        return BoundProperties()
    return BoundProperties({str(k): v for k, v in raw.items()})


def empty_properties(collection_id: str | None) -> NoteProperties:
    return FreeformProperties() if collection_id is None else BoundProperties()


def properties_match(properties: NoteProperties, collection_id: str | None) -> bool:
    if collection_id is None:
        return isinstance(properties, FreeformProperties)
    return isinstance(properties, BoundProperties)


@dataclass(frozen=True)
class Note:
    id: str
    title: str
    collection_id: str | None
    content: NoteContent
    properties: NoteProperties
    created_at: str = ""

    def __post_init__(self) -> None:
        if not properties_match(self.properties, self.collection_id):
            raise ValueError("properties_shape_mismatch")

    @classmethod
    def from_record(cls, record: dict, *, default_title: str = "") -> Note:
        collection_id = record.get("collection_id") or None
        title = record.get("title")
        return cls(
            id=str(record["id"]),
            title=title if isinstance(title, str) and title else default_title,
            collection_id=collection_id,
            content=NoteContent.from_raw(record.get("content")),
            properties=properties_from_raw(record.get("properties"), collection_id),
            created_at=str(record.get("created_at") or ""),
        )

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "collection_id": self.collection_id,
            "content": self.content.to_raw(),
            "properties": self.properties.to_raw(),
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class NoteSummary:
    id: str
    title: str
    collection_id: str | None

    @classmethod
    def of(cls, note: Note) -> NoteSummary:
        return cls(id=note.id, title=note.title, collection_id=note.collection_id)


@dataclass(frozen=True)
class Collection:
    id: str
    name: str
    schema: tuple[PropertyDefinition, ...] = ()
    description: str | None = None
    created_at: str = ""

    def definition(self, definition_id: str) -> PropertyDefinition | None:
        for d in self.schema:
            if d.id == definition_id:
                return d
        return None

    @classmethod
    def from_record(cls, record: dict) -> Collection:
        name = record.get("name")
        description = record.get("description")
        return cls(
            id=str(record["id"]),
            name=name if isinstance(name, str) else "",
            schema=parse_schema(record.get("schema")),
            description=description if isinstance(description, str) else None,
            created_at=str(record.get("created_at") or ""),
        )

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "schema": schema_to_raw(self.schema),
            "created_at": self.created_at,
        }
