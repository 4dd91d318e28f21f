from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Optional

from insanus_notes.autosave import AutosaveScheduler
from insanus_notes.blocks import BlockEditor
from insanus_notes.config import Settings
from insanus_notes.domain.content import NoteContent
from insanus_notes.domain.entities import (
    BoundProperties,
    Collection,
    FreeformProperties,
    Note,
    NoteSummary,
)
from insanus_notes.domain.exceptions import NotFound, StoreError, ValidationSkip
from insanus_notes.domain.ports import EntityStore
from insanus_notes.domain.schema_model import PropertyType, coerce_for_edit, validate_value
from insanus_notes.properties import (
    PropertyControl,
    RelationResolver,
    RelationSearch,
    build_property_panel,
    is_schema_bound,
    referenced_ids,
    require_label,
)
from insanus_notes.table import CollectionTable

logger = logging.getLogger("insanus.session")

DEFAULT_NOTE_TITLE = "Sin titulo"

STATUS_LOADING = "Loading..."
STATUS_EMPTY = "Create your first note."
STATUS_NO_SELECTION = "Select a note or create a new one."
STATUS_SAVING = "Saving..."
STATUS_SAVED = "All saved"


def _note_prefix(note_id: str) -> str:
    return f"note:{note_id}:"


def body_key(note_id: str) -> str:
    return f"note:{note_id}:body"


def property_key(note_id: str, property_id: str) -> str:
    return f"note:{note_id}:property:{property_id}"


class EditorSession:
    """State behind the note list and the editor of one open window.

    Local edits are applied immediately and persisted through the session's
    autosave scheduler; server responses replace only the entity they
    belong to.
    """

    def __init__(
        self,
        store: EntityStore,
        *,
        scheduler: Optional[AutosaveScheduler] = None,
        default_title: str = DEFAULT_NOTE_TITLE,
    ) -> None:
        self.store = store
        self.scheduler = scheduler or AutosaveScheduler()
        self.default_title = default_title
        self.notes: list[Note] = []
        self.collections: list[Collection] = []
        self.status_message = STATUS_LOADING
        self.collections_status = STATUS_LOADING
        self.is_creating = False

        self.current: Optional[Note] = None
        self.title = ""
        self.editor: Optional[BlockEditor] = None
        self.properties = FreeformProperties()
        self.schema_values: dict[str, Any] = {}
        self.relations = RelationResolver(store)
        self._searches: dict[str, RelationSearch] = {}

    @classmethod
    def from_settings(cls, store: EntityStore, settings: Settings) -> EditorSession:
        return cls(
            store,
            scheduler=AutosaveScheduler(settings.autosave_delay_s),
            default_title=settings.default_note_title,
        )

    # loading and selection

    async def load(self) -> None:
        self.status_message = STATUS_LOADING
        notes, collections = await asyncio.gather(
            self.store.list_notes(None), self.store.list_collections(), return_exceptions=True
        )
        if isinstance(notes, StoreError):
            logger.warning("notes_load_failed", extra={"error": notes.message})
            self.status_message = "Could not load notes."
        elif isinstance(notes, BaseException):
            raise notes
        else:
            self.notes = list(notes)
            self.status_message = STATUS_EMPTY if not self.notes else ""

        if isinstance(collections, StoreError):
            logger.warning("collections_load_failed", extra={"error": collections.message})
            self.collections_status = "Could not load collections."
        elif isinstance(collections, BaseException):
            raise collections
        else:
            self.collections = list(collections)
            self.collections_status = "No collections." if not self.collections else ""

        if isinstance(notes, list):
            await self._select_after_load()

    async def _select_after_load(self) -> None:
        """Reopen the selected note from the reloaded list, else open the first one."""
        if not self.notes:
            self._clear_editor()
            return
        selected = self.selected_id
        fresh = next((n for n in self.notes if n.id == selected), self.notes[0])
        if self.current is not None:
            self._discard_pending(self.current.id)
            self.current = None
        await self.select_note(fresh.id)

    @property
    def selected_id(self) -> Optional[str]:
        return self.current.id if self.current else None

    def collection_for(self, note: Optional[Note]) -> Optional[Collection]:
        if note is None or note.collection_id is None:
            return None
        for collection in self.collections:
            if collection.id == note.collection_id:
                return collection
        return None

    def _find_local(self, note_id: str) -> Optional[Note]:
        if self.current is not None and self.current.id == note_id:
            return self.current
        for note in self.notes:
            if note.id == note_id:
                return note
        return None

    def _discard_pending(self, note_id: str) -> None:
        prefix = _note_prefix(note_id)
        self.scheduler.cancel_matching(lambda key: key.startswith(prefix))

    async def select_note(self, note_id: str) -> Optional[Note]:
        if self.current is not None:
            # pending edits for the previous note are dropped, not flushed
            self._discard_pending(self.current.id)

        note = self._find_local(note_id)
        if note is None:
            try:
                note = await self.store.get_note(note_id)
            except NotFound:
                self._clear_editor()
                self.status_message = "Note not found."
                return None
            except StoreError as e:
                logger.warning("note_load_failed", extra={"id": note_id, "error": e.message})
                self._clear_editor()
                self.status_message = "Could not load the note."
                return None

        if note.collection_id is not None and self.collection_for(note) is None:
            try:
                self.collections.append(await self.store.get_collection(note.collection_id))
            except StoreError as e:
                logger.warning("collection_load_failed", extra={"id": note.collection_id, "error": e.message})

        self._apply_to_editor(note)
        await self.refresh_relations()
        return note

    def _apply_to_editor(self, note: Note) -> None:
        self.current = note
        self.title = note.title
        self.editor = BlockEditor.from_content(
            note.content, collections=self.collections, on_change=self._schedule_body
        )
        if isinstance(note.properties, FreeformProperties):
            self.properties = note.properties
            self.schema_values = {}
        else:
            self.properties = FreeformProperties()
            self.schema_values = dict(note.properties.values)
        self._searches = {}
        self.status_message = ""

    def _clear_editor(self) -> None:
        self.current = None
        self.title = ""
        self.editor = None
        self.properties = FreeformProperties()
        self.schema_values = {}
        self._searches = {}

    # reconciliation

    def _reconcile(self, saved: Note) -> None:
        self.notes = [saved if n.id == saved.id else n for n in self.notes]
        if self.current is not None and self.current.id == saved.id:
            self.current = saved
        self.relations.remember(saved)

    def _on_save_error(self, error: StoreError) -> None:
        self.status_message = "Changes could not be saved."

    # body

    def set_title(self, value: str) -> None:
        if self.current is None:
            return
        self.title = value
        self._schedule_body()

    def _schedule_body(self) -> None:
        if self.current is None or self.editor is None:
            return
        note_id = self.current.id
        payload = {
            "title": self.title.strip() or self.default_title,
            "text": self.editor.text,
            "blocks": tuple(self.editor.blocks),
        }

        async def commit(fields: dict) -> Note:
            base = self._find_local(note_id)
            content = (base.content if base else NoteContent()).merged(text=fields["text"], blocks=fields["blocks"])
            return await self.store.update_note(note_id, title=fields["title"], content=content)

        self.scheduler.schedule(body_key(note_id), payload, commit, self._reconcile, self._on_save_error)

    # properties

    def panel(self) -> list[PropertyControl]:
        if self.current is None:
            return []
        if isinstance(self.current.properties, BoundProperties):
            local = replace(self.current, properties=BoundProperties(dict(self.schema_values)))
        else:
            local = replace(self.current, properties=self.properties)
        return build_property_panel(local, self.collection_for(self.current))

    async def create_property(self, label: str, value_type: str = "text") -> None:
        note = self.current
        if note is None or is_schema_bound(note):
            return
        try:
            trimmed = require_label(label)
        except ValidationSkip:
            return
        try:
            prop = await self.store.create_property(note.id, trimmed, value_type)
        except StoreError as e:
            logger.warning("property_create_failed", extra={"id": note.id, "error": e.message})
            self.status_message = "Could not create the property."
            return
        if self.current is None or self.current.id != note.id:
            return
        self.properties = self.properties.prepended(prop)
        known = self.current.properties
        if isinstance(known, FreeformProperties):
            self._reconcile(replace(self.current, properties=known.prepended(prop)))

    def set_property_value(self, property_id: str, value: str) -> None:
        note = self.current
        if note is None or self.properties.find(property_id) is None:
            return
        self.properties = self.properties.with_value(property_id, value)
        note_id = note.id

        async def commit(new_value: str) -> str:
            await self.store.update_property(property_id, new_value)
            return new_value

        def applied(saved_value: str) -> None:
            local = self._find_local(note_id)
            if local is not None and isinstance(local.properties, FreeformProperties):
                self._reconcile(replace(local, properties=local.properties.with_value(property_id, saved_value)))

        self.scheduler.schedule(property_key(note_id, property_id), value, commit, applied, self._on_save_error)

    def set_schema_value(self, definition_id: str, value: Any) -> bool:
        note = self.current
        collection = self.collection_for(note)
        if note is None or collection is None:
            return False
        definition = collection.definition(definition_id)
        if definition is None:
            return False
        try:
            stored = validate_value(definition, value)
        except ValidationSkip:
            return False
        self.schema_values[definition_id] = stored
        note_id = note.id
        snapshot = dict(self.schema_values)

        async def commit(_value: Any) -> Note:
            values = dict(self.schema_values) if self.selected_id == note_id else snapshot
            return await self.store.update_note(note_id, properties=BoundProperties(values))

        self.scheduler.schedule(property_key(note_id, definition_id), stored, commit, self._reconcile, self._on_save_error)
        return True

    # relations

    def relation_search(self, definition_id: str) -> Optional[RelationSearch]:
        note = self.current
        collection = self.collection_for(note)
        if note is None or collection is None:
            return None
        definition = collection.definition(definition_id)
        if definition is None or definition.type is not PropertyType.RELATION:
            return None
        search = self._searches.get(definition_id)
        if search is None:
            search = RelationSearch(
                self.store,
                scope_collection_id=definition.relation_collection_id,
                exclude_id=note.id,
            )
            self._searches[definition_id] = search
        return search

    async def add_relation(self, definition_id: str, target: NoteSummary | str) -> bool:
        search = self.relation_search(definition_id)
        if search is None:
            return False
        target_id = target if isinstance(target, str) else target.id
        if target_id == self.selected_id:
            return False
        if isinstance(target, NoteSummary):
            for hit in search.results:
                if hit.id == target_id:
                    self.relations.remember_summary(hit)
        value = search.select(self.schema_values.get(definition_id), target_id)
        if not self.set_schema_value(definition_id, value):
            return False
        await self.refresh_relations()
        return True

    async def remove_relation(self, definition_id: str, target_id: str) -> bool:
        current = coerce_for_edit(PropertyType.RELATION, self.schema_values.get(definition_id))
        if target_id not in current:
            return False
        return self.set_schema_value(definition_id, [i for i in current if i != target_id])

    def relation_targets(self, definition_id: str) -> list[NoteSummary]:
        ids = coerce_for_edit(PropertyType.RELATION, self.schema_values.get(definition_id))
        return self.relations.summaries_for(ids)

    async def refresh_relations(self) -> None:
        note = self.current
        if note is None or not isinstance(note.properties, BoundProperties):
            return
        local = replace(note, properties=BoundProperties(dict(self.schema_values)))
        ids = referenced_ids(local, self.collection_for(note))
        if ids:
            await self.relations.resolve(ids)

    # lifecycle of notes and collections

    async def create_note(self, collection_id: Optional[str] = None) -> Optional[Note]:
        self.is_creating = True
        try:
            note = await self.store.create_note(collection_id)
        except StoreError as e:
            logger.warning("note_create_failed", extra={"collection_id": collection_id, "error": e.message})
            self.status_message = "Could not create the note."
            return None
        finally:
            self.is_creating = False
        if note.collection_id is None:
            self.notes = [note] + self.notes
        await self.select_note(note.id)
        return note

    async def delete_note(self) -> bool:
        note = self.current
        if note is None:
            return False
        self._discard_pending(note.id)
        try:
            await self.store.delete_note(note.id)
        except StoreError as e:
            logger.warning("note_delete_failed", extra={"id": note.id, "error": e.message})
            self.status_message = "Could not delete the note."
            return False
        self.notes = [n for n in self.notes if n.id != note.id]
        self.relations.forget(note.id)
        self._clear_editor()
        self.status_message = STATUS_NO_SELECTION if self.notes else STATUS_EMPTY
        return True

    async def create_collection(self, name: str) -> Optional[Collection]:
        trimmed = name.strip()
        if not trimmed:
            return None
        try:
            collection = await self.store.create_collection(trimmed)
        except StoreError as e:
            logger.warning("collection_create_failed", extra={"error": e.message})
            self.collections_status = "Could not create the collection."
            return None
        self.collections.append(collection)
        self.collections_status = ""
        if self.editor is not None:
            self.editor.menu.collections = list(self.collections)
        return collection

    def open_table(self, collection_id: str) -> CollectionTable:
        return CollectionTable(self.store, self.scheduler, collection_id, relations=self.relations)

    # indicators

    @property
    def save_indicator(self) -> str:
        note = self.current
        if note is None:
            return ""
        prefix = _note_prefix(note.id)
        if any(key.startswith(prefix) for key in self.scheduler.saving_keys()):
            return STATUS_SAVING
        return STATUS_SAVED

    def close(self) -> None:
        self.scheduler.cancel_all()
        self._clear_editor()
