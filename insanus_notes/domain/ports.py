from __future__ import annotations

from typing import Protocol, runtime_checkable

from insanus_notes.domain.content import NoteContent
from insanus_notes.domain.entities import Collection, Note, NoteProperties, Property
from insanus_notes.domain.schema_model import PropertyDefinition


@runtime_checkable
class EntityStore(Protocol):
    async def list_collections(self) -> list[Collection]:
        ...

    async def get_collection(self, collection_id: str) -> Collection:
        ...

    async def create_collection(self, name: str, description: str | None = None) -> Collection:
        ...

    async def update_collection_schema(
        self, collection_id: str, schema: list[PropertyDefinition] | tuple[PropertyDefinition, ...]
    ) -> Collection:
        ...

    async def list_notes(self, collection_id: str | None) -> list[Note]:
        ...

    async def get_note(self, note_id: str) -> Note:
        ...

    async def get_notes_by_ids(self, ids: list[str]) -> list[Note]:
        ...

    async def search_notes(
        self,
        query: str,
        collection_id: str | None = None,
        exclude_id: str | None = None,
        limit: int = 20,
    ) -> list[Note]:
        ...

    async def create_note(self, collection_id: str | None, title: str | None = None) -> Note:
        ...

    async def update_note(
        self,
        note_id: str,
        *,
        title: str | None = None,
        content: NoteContent | None = None,
        properties: NoteProperties | None = None,
    ) -> Note:
        ...

    async def delete_note(self, note_id: str) -> None:
        ...

    async def create_property(self, note_id: str, label: str, value_type: str) -> Property:
        ...

    async def update_property(self, property_id: str, value: str) -> None:
        ...
