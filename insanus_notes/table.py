from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Optional

from insanus_notes.autosave import AutosaveScheduler
from insanus_notes.domain.entities import BoundProperties, Collection, Note, NoteSummary
from insanus_notes.domain.exceptions import StoreError, ValidationSkip
from insanus_notes.domain.ports import EntityStore
from insanus_notes.domain.schema_model import PropertyType, coerce_for_edit, dedupe_ids, new_definition, validate_value
from insanus_notes.properties import SCHEMA_CONTROLS, RelationResolver, control_for_definition

logger = logging.getLogger("insanus.table")

TITLE_COLUMN = "title"


@dataclass(frozen=True)
class TableColumn:
    key: str
    label: str
    control: str
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class TableCell:
    key: str
    control: str
    value: Any
    options: tuple[str, ...] = ()
    # resolved relation targets, in value order
    targets: tuple[NoteSummary, ...] = ()


@dataclass(frozen=True)
class TableRow:
    note_id: str
    title: str
    cells: tuple[TableCell, ...]


@dataclass(frozen=True)
class TableModel:
    collection_id: str
    name: str
    columns: tuple[TableColumn, ...]
    rows: tuple[TableRow, ...]


def build_table(
    collection: Collection, notes: list[Note], relations: Optional[RelationResolver] = None
) -> TableModel:
    columns = [TableColumn(TITLE_COLUMN, "Title", "text")]
    columns.extend(
        TableColumn(d.id, d.name, SCHEMA_CONTROLS[d.type], tuple(d.options or ())) for d in collection.schema
    )
    rows = []
    for note in notes:
        values = note.properties if isinstance(note.properties, BoundProperties) else BoundProperties()
        cells = []
        for definition in collection.schema:
            control = control_for_definition(definition, values.get(definition.id))
            targets: tuple[NoteSummary, ...] = ()
            if definition.type is PropertyType.RELATION and relations is not None:
                targets = tuple(relations.summaries_for(control.value))
            cells.append(TableCell(definition.id, control.control, control.value, control.options, targets))
        rows.append(TableRow(note.id, note.title, tuple(cells)))
    return TableModel(collection.id, collection.name, tuple(columns), tuple(rows))


def relation_ids_in(collection: Collection, notes: list[Note]) -> list[str]:
    ids: list[str] = []
    for definition in collection.schema:
        if definition.type is not PropertyType.RELATION:
            continue
        for note in notes:
            if isinstance(note.properties, BoundProperties):
                ids.extend(coerce_for_edit(PropertyType.RELATION, note.properties.get(definition.id)))
    return dedupe_ids(ids)


class CollectionTable:
    """Spreadsheet-style editing of one collection's rows."""

    def __init__(
        self,
        store: EntityStore,
        scheduler: AutosaveScheduler,
        collection_id: str,
        relations: Optional[RelationResolver] = None,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.collection_id = collection_id
        self.relations = relations or RelationResolver(store)
        self.collection: Optional[Collection] = None
        self.notes: list[Note] = []
        self.status_message = "Loading..."
        self.is_saving = False

    def model(self) -> Optional[TableModel]:
        if self.collection is None:
            return None
        return build_table(self.collection, self.notes, self.relations)

    async def load(self) -> None:
        try:
            collection, notes = await asyncio.gather(
                self.store.get_collection(self.collection_id),
                self.store.list_notes(self.collection_id),
            )
        except StoreError as e:
            logger.warning("table_load_failed", extra={"collection_id": self.collection_id, "error": e.message})
            self.status_message = "Could not load the collection."
            return
        self.collection = collection
        self.notes = list(notes)
        self.status_message = ""
        await self.refresh_relations()

    async def refresh_relations(self) -> None:
        if self.collection is None:
            return
        ids = relation_ids_in(self.collection, self.notes)
        if ids:
            await self.relations.resolve(ids)

    def _find(self, note_id: str) -> Optional[Note]:
        for note in self.notes:
            if note.id == note_id:
                return note
        return None

    def _replace(self, note: Note) -> None:
        self.notes = [note if n.id == note.id else n for n in self.notes]

    async def create_row(self) -> Optional[Note]:
        self.is_saving = True
        try:
            note = await self.store.create_note(self.collection_id)
        except StoreError as e:
            logger.warning("table_row_create_failed", extra={"error": e.message})
            self.status_message = "Could not create the note."
            return None
        finally:
            self.is_saving = False
        self.notes = [note] + self.notes
        self.relations.remember(note)
        return note

    def set_title(self, note_id: str, value: str) -> None:
        note = self._find(note_id)
        if note is None:
            return
        self._replace(replace(note, title=value))

        async def commit(title: str) -> Note:
            return await self.store.update_note(note_id, title=title)

        self.scheduler.schedule(f"row:{note_id}:title", value, commit, on_success=self._reconcile_title)

    async def set_cell(self, note_id: str, definition_id: str, value: Any) -> bool:
        note = self._find(note_id)
        if note is None or self.collection is None:
            return False
        definition = self.collection.definition(definition_id)
        if definition is None or not isinstance(note.properties, BoundProperties):
            return False
        try:
            stored = validate_value(definition, value)
        except ValidationSkip:
            return False
        self._replace(replace(note, properties=note.properties.with_value(definition_id, stored)))

        async def commit(_payload: Any) -> Note:
            # merge from the local copy so concurrent cell edits on one row are kept
            latest = self._find(note_id)
            if latest is None:
                raise StoreError("note_not_found")
            return await self.store.update_note(note_id, properties=latest.properties)

        self.scheduler.schedule(f"row:{note_id}:properties", stored, commit, on_success=self._reconcile_properties)
        if definition.type is PropertyType.RELATION:
            await self.refresh_relations()
        return True

    def _reconcile_title(self, saved: Note) -> None:
        local = self._find(saved.id)
        if local is None:
            return
        if self.scheduler.is_pending(f"row:{saved.id}:title"):
            # a newer title is queued; keep what the user typed
            return
        self._replace(replace(local, title=saved.title))
        self.relations.remember(saved)

    def _reconcile_properties(self, saved: Note) -> None:
        local = self._find(saved.id)
        if local is None:
            return
        if self.scheduler.is_pending(f"row:{saved.id}:properties"):
            # a newer edit is queued; keep the optimistic values
            return
        self._replace(replace(local, properties=saved.properties))

    async def add_property(
        self,
        name: str,
        prop_type: PropertyType | str,
        options_text: str = "",
        relation_collection_id: Optional[str] = None,
    ) -> Optional[Collection]:
        if self.collection is None:
            return None
        try:
            definition = new_definition(name, prop_type, options_text, relation_collection_id)
        except ValidationSkip:
            return None
        try:
            updated = await self.store.update_collection_schema(
                self.collection.id, list(self.collection.schema) + [definition]
            )
        except StoreError as e:
            logger.warning("schema_update_failed", extra={"collection_id": self.collection.id, "error": e.message})
            self.status_message = "Could not update the schema."
            return None
        self.collection = updated
        return updated

    def close(self) -> None:
        self.scheduler.cancel_matching(lambda key: key.startswith("row:"))
