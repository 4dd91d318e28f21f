from __future__ import annotations

import logging
from pathlib import Path

from insanus_notes.domain.content import NoteContent
from insanus_notes.domain.entities import (
    FREEFORM_PROPERTY_TYPES,
    Collection,
    Note,
    NoteProperties,
    Property,
    empty_properties,
    properties_from_raw,
    properties_match,
)
from insanus_notes.domain.exceptions import NotFound, StoreError
from insanus_notes.domain.schema_model import PropertyDefinition, schema_to_raw
from insanus_notes.util import atomic_write_json, new_id, read_json, rfc3339_now

logger = logging.getLogger("insanus.store")


class RecordFile:
    """A JSON list of records kept in creation order."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> list[dict]:
        data = read_json(self.path, [])
        if not isinstance(data, list):
            return []
        return [r for r in data if isinstance(r, dict) and isinstance(r.get("id"), str)]

    def write(self, records: list[dict]) -> None:
        try:
            atomic_write_json(self.path, records)
        except OSError as e:
            raise StoreError(f"write_failed:{self.path.name}") from e


def _find(records: list[dict], record_id: str) -> dict | None:
    for r in records:
        if r["id"] == record_id:
            return r
    return None


def _by_creation(records: list[dict]) -> list[dict]:
    return sorted(records, key=lambda r: str(r.get("created_at") or ""))


class FileEntityStore:
    def __init__(self, data_dir: Path, default_title: str = "Sin titulo") -> None:
        self.data_dir = data_dir
        self.default_title = default_title
        self.collections = RecordFile(data_dir / "collections.json")
        self.notes = RecordFile(data_dir / "notes.json")

    def _note(self, record: dict) -> Note:
        return Note.from_record(record, default_title=self.default_title)

    def _note_record(self, records: list[dict], note_id: str) -> dict:
        record = _find(records, note_id)
        if record is None:
            raise NotFound("note_not_found")
        return record

    async def list_collections(self) -> list[Collection]:
        return [Collection.from_record(r) for r in _by_creation(self.collections.load())]

    async def get_collection(self, collection_id: str) -> Collection:
        record = _find(self.collections.load(), collection_id)
        if record is None:
            raise NotFound("collection_not_found")
        return Collection.from_record(record)

    async def create_collection(self, name: str, description: str | None = None) -> Collection:
        records = self.collections.load()
        record = {
            "id": new_id(),
            "name": name,
            "description": description,
            "schema": [],
            "created_at": rfc3339_now(),
        }
        records.append(record)
        self.collections.write(records)
        logger.info("collection_create", extra={"id": record["id"]})
        return Collection.from_record(record)

    async def update_collection_schema(
        self, collection_id: str, schema: list[PropertyDefinition] | tuple[PropertyDefinition, ...]
    ) -> Collection:
        records = self.collections.load()
        record = _find(records, collection_id)
        if record is None:
            raise NotFound("collection_not_found")
        record["schema"] = schema_to_raw(schema)
        self.collections.write(records)
        return Collection.from_record(record)

    async def list_notes(self, collection_id: str | None) -> list[Note]:
        records = [r for r in self.notes.load() if (r.get("collection_id") or None) == collection_id]
        return [self._note(r) for r in _by_creation(records)]

    async def get_note(self, note_id: str) -> Note:
        return self._note(self._note_record(self.notes.load(), note_id))

    async def get_notes_by_ids(self, ids: list[str]) -> list[Note]:
        wanted = set(ids)
        if not wanted:
            return []
        return [self._note(r) for r in self.notes.load() if r["id"] in wanted]

    async def search_notes(
        self,
        query: str,
        collection_id: str | None = None,
        exclude_id: str | None = None,
        limit: int = 20,
    ) -> list[Note]:
        needle = query.strip().lower()
        out: list[Note] = []
        for record in _by_creation(self.notes.load()):
            if exclude_id and record["id"] == exclude_id:
                continue
            if collection_id and record.get("collection_id") != collection_id:
                continue
            note = self._note(record)
            if needle not in note.title.lower():
                continue
            out.append(note)
            if len(out) >= limit:
                break
        return out

    async def create_note(self, collection_id: str | None, title: str | None = None) -> Note:
        if collection_id is not None:
            await self.get_collection(collection_id)
        records = self.notes.load()
        record = {
            "id": new_id(),
            "title": (title or "").strip() or self.default_title,
            "collection_id": collection_id,
            "content": NoteContent().to_raw(),
            "properties": empty_properties(collection_id).to_raw(),
            "created_at": rfc3339_now(),
        }
        records.append(record)
        self.notes.write(records)
        logger.info("note_create", extra={"id": record["id"], "collection_id": collection_id})
        return self._note(record)

    async def update_note(
        self,
        note_id: str,
        *,
        title: str | None = None,
        content: NoteContent | None = None,
        properties: NoteProperties | None = None,
    ) -> Note:
        records = self.notes.load()
        record = self._note_record(records, note_id)
        if properties is not None and not properties_match(properties, record.get("collection_id") or None):
            raise StoreError("properties_shape_mismatch")
        if title is not None:
            record["title"] = title
        if content is not None:
            record["content"] = content.to_raw()
        if properties is not None:
            record["properties"] = properties.to_raw()
        self.notes.write(records)
        return self._note(record)

    async def delete_note(self, note_id: str) -> None:
        records = self.notes.load()
        record = self._note_record(records, note_id)
        records.remove(record)
        self.notes.write(records)
        logger.info("note_delete", extra={"id": note_id})

    async def create_property(self, note_id: str, label: str, value_type: str) -> Property:
        records = self.notes.load()
        record = self._note_record(records, note_id)
        collection_id = record.get("collection_id") or None
        if collection_id is not None:
            raise StoreError("note_is_schema_bound")
        prop = Property(
            id=new_id(),
            note_id=note_id,
            label=label,
            type=value_type if value_type in FREEFORM_PROPERTY_TYPES else "text",
            value="",
        )
        current = properties_from_raw(record.get("properties"), None)
        record["properties"] = current.prepended(prop).to_raw()
        self.notes.write(records)
        return prop

    async def update_property(self, property_id: str, value: str) -> None:
        records = self.notes.load()
        for record in records:
            if record.get("collection_id"):
                continue
            current = properties_from_raw(record.get("properties"), None)
            if current.find(property_id) is None:
                continue
            record["properties"] = current.with_value(property_id, value).to_raw()
            self.notes.write(records)
            return
        raise NotFound("property_not_found")
