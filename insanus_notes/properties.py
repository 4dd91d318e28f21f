from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from insanus_notes.domain.entities import (
    BoundProperties,
    Collection,
    FreeformProperties,
    Note,
    NoteSummary,
)
from insanus_notes.domain.exceptions import StoreError, ValidationSkip
from insanus_notes.domain.ports import EntityStore
from insanus_notes.domain.schema_model import PropertyDefinition, PropertyType, coerce_for_edit, dedupe_ids

logger = logging.getLogger("insanus.properties")

# control kinds understood by the presentation layer
SCHEMA_CONTROLS = {
    PropertyType.TEXT: "text",
    PropertyType.NUMBER: "number",
    PropertyType.DATE: "date",
    PropertyType.BOOLEAN: "checkbox",
    PropertyType.SELECT: "select",
    PropertyType.RELATION: "relation",
}
_FREEFORM_CONTROLS = {"date": "date", "number": "number"}


@dataclass(frozen=True)
class PropertyControl:
    key: str
    label: str
    control: str
    value: Any
    options: tuple[str, ...] = ()
    relation_collection_id: str | None = None
    bound: bool = False


def is_schema_bound(note: Note) -> bool:
    return note.collection_id is not None


def control_for_definition(definition: PropertyDefinition, raw: Any) -> PropertyControl:
    return PropertyControl(
        key=definition.id,
        label=definition.name,
        control=SCHEMA_CONTROLS[definition.type],
        value=coerce_for_edit(definition.type, raw),
        options=tuple(definition.options or ()),
        relation_collection_id=definition.relation_collection_id,
        bound=True,
    )


def build_property_panel(note: Note, collection: Collection | None) -> list[PropertyControl]:
    """Controls for the property panel of ``note``, in display order.

    Schema-bound notes get one control per definition even when no value
    is stored yet; freeform notes list their ad-hoc properties.
    """
    if isinstance(note.properties, BoundProperties):
        if collection is None:
            return []
        return [control_for_definition(d, note.properties.get(d.id)) for d in collection.schema]
    if not isinstance(note.properties, FreeformProperties):
        return []
    return [
        PropertyControl(
            key=p.id,
            label=p.label,
            control=_FREEFORM_CONTROLS.get(p.type, "text"),
            value=p.value,
        )
        for p in note.properties.items
    ]


def require_label(label: str) -> str:
    trimmed = label.strip()
    if not trimmed:
        raise ValidationSkip("property_label_empty")
    return trimmed


def referenced_ids(note: Note, collection: Collection | None) -> list[str]:
    if collection is None or not isinstance(note.properties, BoundProperties):
        return []
    ids: list[str] = []
    for definition in collection.schema:
        if definition.type is PropertyType.RELATION:
            ids.extend(coerce_for_edit(PropertyType.RELATION, note.properties.get(definition.id)))
    return dedupe_ids(ids)


class RelationResolver:
    """Session-wide cache of relation targets.

    Entries are never evicted, so a target renamed elsewhere keeps its old
    title until the session is rebuilt.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store
        self._cache: dict[str, NoteSummary] = {}

    def remember(self, note: Note) -> None:
        self._cache[note.id] = NoteSummary.of(note)

    def remember_summary(self, summary: NoteSummary) -> None:
        self._cache[summary.id] = summary

    def forget(self, note_id: str) -> None:
        self._cache.pop(note_id, None)

    async def resolve(self, ids: list[str]) -> dict[str, NoteSummary]:
        missing = [i for i in dedupe_ids(ids) if i not in self._cache]
        if missing:
            try:
                found = await self._store.get_notes_by_ids(missing)
            except StoreError as e:
                logger.warning("relation_resolve_failed", extra={"ids": missing, "error": e.message})
                found = []
            for note in found:
                self.remember(note)
        return {i: self._cache[i] for i in ids if i in self._cache}

    def summaries_for(self, ids: list[str]) -> list[NoteSummary]:
        return [self._cache[i] for i in ids if i in self._cache]


@dataclass
class RelationSearch:
    """Search-as-you-type state for a single relation field."""

    store: EntityStore
    scope_collection_id: str | None = None
    exclude_id: str | None = None
    term: str = ""
    results: list[NoteSummary] = field(default_factory=list)
    error: str | None = None
    _seq: int = field(default=0, repr=False)

    async def update(self, term: str) -> list[NoteSummary]:
        self.term = term
        self._seq += 1
        seq = self._seq
        if not term.strip():
            self.results = []
            return self.results
        try:
            notes = await self.store.search_notes(term, self.scope_collection_id, self.exclude_id)
        except StoreError as e:
            if seq == self._seq:
                self.error = e.message
                self.results = []
            return self.results
        # a newer keystroke already owns the result list
        if seq != self._seq:
            return self.results
        self.error = None
        self.results = [NoteSummary.of(n) for n in notes]
        return self.results

    def select(self, current: Any, note_id: str) -> list[str]:
        value = coerce_for_edit(PropertyType.RELATION, current)
        self.clear()
        return dedupe_ids(list(value) + [note_id])

    def clear(self) -> None:
        self._seq += 1
        self.term = ""
        self.results = []
        self.error = None
