import json

import pytest

from insanus_notes.domain.content import BlockType, ContentBlock, NoteContent
from insanus_notes.domain.entities import BoundProperties, FreeformProperties
from insanus_notes.domain.exceptions import NotFound, StoreError
from insanus_notes.domain.ports import EntityStore
from insanus_notes.domain.schema_model import new_definition
from insanus_notes.store.file_store import FileEntityStore


def test_file_store_satisfies_port(store) -> None:
    assert isinstance(store, EntityStore)


@pytest.mark.asyncio
async def test_notes_are_partitioned_by_collection(store) -> None:
    projects = await store.create_collection("Projects")
    loose = await store.create_note(None)
    row = await store.create_note(projects.id, "Launch")

    assert loose.title == "Sin titulo"
    assert isinstance(loose.properties, FreeformProperties)
    assert isinstance(row.properties, BoundProperties)
    assert [n.id for n in await store.list_notes(None)] == [loose.id]
    assert [n.id for n in await store.list_notes(projects.id)] == [row.id]


@pytest.mark.asyncio
async def test_create_note_in_unknown_collection_fails(store) -> None:
    with pytest.raises(NotFound):
        await store.create_note("missing")


@pytest.mark.asyncio
async def test_update_note_persists_and_keeps_created_at(tmp_path, store) -> None:
    note = await store.create_note(None)
    content = NoteContent(text="hello", blocks=(ContentBlock.new(BlockType.HEADING1, "Intro"),))
    updated = await store.update_note(note.id, title="Plan", content=content)

    assert updated.title == "Plan"
    assert updated.created_at == note.created_at

    reopened = FileEntityStore(tmp_path)
    again = await reopened.get_note(note.id)
    assert again.content == content

    records = json.loads((tmp_path / "notes.json").read_text(encoding="utf-8"))
    assert records[0]["content"]["blocks"][0]["text"] == "Intro"


@pytest.mark.asyncio
async def test_update_note_rejects_wrong_properties_shape(store) -> None:
    note = await store.create_note(None)
    with pytest.raises(StoreError) as exc:
        await store.update_note(note.id, properties=BoundProperties({"x": "y"}))
    assert exc.value.message == "properties_shape_mismatch"


@pytest.mark.asyncio
async def test_missing_entities_raise_not_found(store) -> None:
    with pytest.raises(NotFound):
        await store.get_note("nope")
    with pytest.raises(NotFound):
        await store.get_collection("nope")
    with pytest.raises(NotFound):
        await store.delete_note("nope")
    with pytest.raises(NotFound):
        await store.update_property("nope", "x")


@pytest.mark.asyncio
async def test_freeform_properties_are_prepended_and_updated(store) -> None:
    note = await store.create_note(None)
    first = await store.create_property(note.id, "Owner", "text")
    second = await store.create_property(note.id, "Due", "date")
    await store.update_property(first.id, "Ana")

    loaded = await store.get_note(note.id)
    assert [p.id for p in loaded.properties.items] == [second.id, first.id]
    assert loaded.properties.find(first.id).value == "Ana"
    assert second.type == "date"


@pytest.mark.asyncio
async def test_schema_bound_notes_reject_freeform_properties(store) -> None:
    collection = await store.create_collection("Tasks")
    row = await store.create_note(collection.id)
    with pytest.raises(StoreError) as exc:
        await store.create_property(row.id, "Owner", "text")
    assert exc.value.message == "note_is_schema_bound"


@pytest.mark.asyncio
async def test_schema_replace_and_search(store) -> None:
    collection = await store.create_collection("Reading")
    stage = new_definition("Stage", "select", "Queued, Read")
    updated = await store.update_collection_schema(collection.id, [stage])
    assert updated.definition(stage.id).options == ("Queued", "Read")

    a = await store.create_note(collection.id, "Dune")
    await store.create_note(collection.id, "Dune Messiah")
    await store.create_note(None, "dune notes")

    scoped = await store.search_notes("DUNE", collection.id, exclude_id=a.id)
    assert [n.title for n in scoped] == ["Dune Messiah"]
    everywhere = await store.search_notes("dune", limit=2)
    assert len(everywhere) == 2


@pytest.mark.asyncio
async def test_get_notes_by_ids_ignores_unknown(store) -> None:
    a = await store.create_note(None, "A")
    found = await store.get_notes_by_ids([a.id, "ghost"])
    assert [n.id for n in found] == [a.id]
    assert await store.get_notes_by_ids([]) == []


@pytest.mark.asyncio
async def test_corrupt_data_file_reads_as_empty(tmp_path) -> None:
    (tmp_path / "notes.json").write_text("{not json", encoding="utf-8")
    store = FileEntityStore(tmp_path)
    assert await store.list_notes(None) == []
