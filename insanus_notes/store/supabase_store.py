"""Entity store backed by the Supabase ``collections`` and ``notes`` tables."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from supabase import Client, create_client  # type: ignore

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
from insanus_notes.util import new_id

logger = logging.getLogger("insanus.store")

COLLECTION_FIELDS = "id, name, description, schema_json, created_at"
NOTE_FIELDS = "id, collection_id, title, content_jsonb, properties_jsonb, created_at"


def create_supabase_client(url: Optional[str], key: Optional[str]) -> Client:
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(url, key)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SupabaseEntityStore:
    """
    Gateway over supabase-py.
    Hides the PostgREST filter dialect (eq / is null / in / ilike / contains)
    from the engines; rows are deserialized into domain entities here.
    """

    def __init__(self, client: Client, default_title: str = "Sin titulo"):
        self._client = client
        self.default_title = default_title

    def _execute(self, query: Any) -> List[Dict[str, Any]]:
        try:
            response = query.execute()
        except Exception as e:
            message = getattr(e, "message", None) or str(e) or "store_request_failed"
            logger.warning("store_error", extra={"error": message})
            raise StoreError(message) from e
        return list(response.data or [])

    def _to_collection(self, row: Dict[str, Any]) -> Collection:
        return Collection.from_record(
            {
                "id": row["id"],
                "name": row.get("name"),
                "description": row.get("description"),
                "schema": row.get("schema_json"),
                "created_at": row.get("created_at"),
            }
        )

    def _to_note(self, row: Dict[str, Any]) -> Note:
        return Note.from_record(
            {
                "id": row["id"],
                "title": row.get("title"),
                "collection_id": row.get("collection_id"),
                "content": row.get("content_jsonb"),
                "properties": row.get("properties_jsonb"),
                "created_at": row.get("created_at"),
            },
            default_title=self.default_title,
        )

    def _single(self, rows: List[Dict[str, Any]], missing: str) -> Dict[str, Any]:
        if not rows:
            raise NotFound(missing)
        return rows[0]

    async def _note_row(self, note_id: str) -> Dict[str, Any]:
        rows = self._execute(self._client.table("notes").select(NOTE_FIELDS).eq("id", note_id))
        return self._single(rows, "note_not_found")

    async def list_collections(self) -> List[Collection]:
        query = self._client.table("collections").select(COLLECTION_FIELDS).order("created_at", desc=False)
        return [self._to_collection(r) for r in self._execute(query)]

    async def get_collection(self, collection_id: str) -> Collection:
        query = self._client.table("collections").select(COLLECTION_FIELDS).eq("id", collection_id)
        return self._to_collection(self._single(self._execute(query), "collection_not_found"))

    async def create_collection(self, name: str, description: Optional[str] = None) -> Collection:
        query = self._client.table("collections").insert(
            {"name": name, "description": description, "schema_json": []}
        )
        rows = self._execute(query)
        if not rows:
            raise StoreError("Failed to create collection")
        return self._to_collection(rows[0])

    async def update_collection_schema(self, collection_id: str, schema) -> Collection:
        query = (
            self._client.table("collections")
            .update({"schema_json": schema_to_raw(schema)})
            .eq("id", collection_id)
        )
        return self._to_collection(self._single(self._execute(query), "collection_not_found"))

    async def list_notes(self, collection_id: Optional[str]) -> List[Note]:
        query = self._client.table("notes").select(NOTE_FIELDS).order("created_at", desc=False)
        if collection_id:
            query = query.eq("collection_id", collection_id)
        else:
            query = query.is_("collection_id", "null")
        return [self._to_note(r) for r in self._execute(query)]

    async def get_note(self, note_id: str) -> Note:
        return self._to_note(await self._note_row(note_id))

    async def get_notes_by_ids(self, ids: List[str]) -> List[Note]:
        if not ids:
            return []
        query = self._client.table("notes").select(NOTE_FIELDS).in_("id", list(dict.fromkeys(ids)))
        return [self._to_note(r) for r in self._execute(query)]

    async def search_notes(
        self,
        query: str,
        collection_id: Optional[str] = None,
        exclude_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[Note]:
        q = (
            self._client.table("notes")
            .select(NOTE_FIELDS)
            .ilike("title", f"%{_escape_like(query.strip())}%")
        )
        if collection_id:
            q = q.eq("collection_id", collection_id)
        if exclude_id:
            q = q.neq("id", exclude_id)
        q = q.order("created_at", desc=False).limit(limit)
        return [self._to_note(r) for r in self._execute(q)]

    async def create_note(self, collection_id: Optional[str], title: Optional[str] = None) -> Note:
        query = self._client.table("notes").insert(
            {
                "title": (title or "").strip() or self.default_title,
                "collection_id": collection_id,
                "content_jsonb": NoteContent().to_raw(),
                "properties_jsonb": empty_properties(collection_id).to_raw(),
            }
        )
        rows = self._execute(query)
        if not rows:
            raise StoreError("Failed to create note")
        return self._to_note(rows[0])

    async def update_note(
        self,
        note_id: str,
        *,
        title: Optional[str] = None,
        content: Optional[NoteContent] = None,
        properties: Optional[NoteProperties] = None,
    ) -> Note:
        data: Dict[str, Any] = {}
        if title is not None:
            data["title"] = title
        if content is not None:
            data["content_jsonb"] = content.to_raw()
        if properties is not None:
            row = await self._note_row(note_id)
            if not properties_match(properties, row.get("collection_id") or None):
                raise StoreError("properties_shape_mismatch")
            data["properties_jsonb"] = properties.to_raw()

        if not data:
            # Nothing to patch
            return await self.get_note(note_id)

        query = self._client.table("notes").update(data).eq("id", note_id)
        return self._to_note(self._single(self._execute(query), "note_not_found"))

    async def delete_note(self, note_id: str) -> None:
        rows = self._execute(self._client.table("notes").delete().eq("id", note_id))
        if not rows:
            raise NotFound("note_not_found")

    async def create_property(self, note_id: str, label: str, value_type: str) -> Property:
        row = await self._note_row(note_id)
        if row.get("collection_id"):
            raise StoreError("note_is_schema_bound")
        prop = Property(
            id=new_id(),
            note_id=note_id,
            label=label,
            type=value_type if value_type in FREEFORM_PROPERTY_TYPES else "text",
            value="",
        )
        current = properties_from_raw(row.get("properties_jsonb"), None)
        query = (
            self._client.table("notes")
            .update({"properties_jsonb": current.prepended(prop).to_raw()})
            .eq("id", note_id)
        )
        self._execute(query)
        return prop

    async def update_property(self, property_id: str, value: str) -> None:
        query = (
            self._client.table("notes")
            .select(NOTE_FIELDS)
            .is_("collection_id", "null")
            .contains("properties_jsonb", [{"id": property_id}])
        )
        rows = self._execute(query)
        row = self._single(rows, "property_not_found")
        current = properties_from_raw(row.get("properties_jsonb"), None)
        self._execute(
            self._client.table("notes")
            .update({"properties_jsonb": current.with_value(property_id, value).to_raw()})
            .eq("id", row["id"])
        )
