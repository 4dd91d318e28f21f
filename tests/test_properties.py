import asyncio

import pytest

from insanus_notes.domain.content import NoteContent
from insanus_notes.domain.entities import BoundProperties, Collection, FreeformProperties, Note, Property
from insanus_notes.domain.exceptions import StoreError, ValidationSkip
from insanus_notes.domain.schema_model import PropertyDefinition, PropertyType
from insanus_notes.properties import (
    RelationResolver,
    RelationSearch,
    build_property_panel,
    referenced_ids,
    require_label,
)


def bound_note(values: dict, note_id: str = "row-1") -> Note:
    return Note(note_id, "Row", "col-1", NoteContent(), BoundProperties(values))


COLLECTION = Collection(
    "col-1",
    "Tasks",
    schema=(
        PropertyDefinition("done", "Done", PropertyType.BOOLEAN),
        PropertyDefinition("stage", "Stage", PropertyType.SELECT, options=("Todo", "Done")),
        PropertyDefinition("links", "Links", PropertyType.RELATION, relation_collection_id="col-2"),
    ),
)


class FakeStore:
    def __init__(self, notes=()) -> None:
        self.notes = {n.id: n for n in notes}
        self.batches: list[list[str]] = []
        self.fail = False

    async def get_notes_by_ids(self, ids):
        self.batches.append(list(ids))
        if self.fail:
            raise StoreError("offline")
        return [self.notes[i] for i in ids if i in self.notes]


def test_schema_bound_panel_lists_every_definition() -> None:
    panel = build_property_panel(bound_note({"done": "false", "links": "n1"}), COLLECTION)

    assert [c.key for c in panel] == ["done", "stage", "links"]
    assert [c.control for c in panel] == ["checkbox", "select", "relation"]
    assert panel[0].value is False
    assert panel[1].value == ""
    assert panel[1].options == ("Todo", "Done")
    assert panel[2].value == []
    assert all(c.bound for c in panel)


def test_freeform_panel_follows_stored_order() -> None:
    props = FreeformProperties(
        (
            Property("p2", "n1", "Due", "date", "2024-05-01"),
            Property("p1", "n1", "State", "status", "open"),
        )
    )
    note = Note("n1", "Loose", None, NoteContent(), props)

    panel = build_property_panel(note, None)

    assert [(c.key, c.control, c.value) for c in panel] == [
        ("p2", "date", "2024-05-01"),
        ("p1", "text", "open"),
    ]


def test_bound_note_without_collection_shows_nothing() -> None:
    assert build_property_panel(bound_note({"done": True}), None) == []


def test_require_label() -> None:
    assert require_label("  Owner ") == "Owner"
    with pytest.raises(ValidationSkip):
        require_label("   ")


def test_referenced_ids_are_deduplicated() -> None:
    note = bound_note({"links": ["a", "b", "a"]})
    assert referenced_ids(note, COLLECTION) == ["a", "b"]


@pytest.mark.asyncio
async def test_resolver_batches_only_missing_ids() -> None:
    a = Note("a", "Alpha", "col-2", NoteContent(), BoundProperties())
    b = Note("b", "Beta", "col-2", NoteContent(), BoundProperties())
    store = FakeStore([a, b])
    resolver = RelationResolver(store)

    first = await resolver.resolve(["a", "b", "gone"])
    second = await resolver.resolve(["a", "b"])

    assert sorted(first) == ["a", "b"]
    assert sorted(second) == ["a", "b"]
    assert store.batches == [["a", "b", "gone"]]
    assert [s.title for s in resolver.summaries_for(["b", "a", "gone"])] == ["Beta", "Alpha"]


@pytest.mark.asyncio
async def test_resolver_swallows_store_errors() -> None:
    store = FakeStore()
    store.fail = True
    resolver = RelationResolver(store)
    assert await resolver.resolve(["a"]) == {}


class SlowSearchStore:
    def __init__(self) -> None:
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple] = []

    async def search_notes(self, query, collection_id=None, exclude_id=None, limit=20):
        self.calls.append((query, collection_id, exclude_id))
        gate = self.gates.setdefault(query, asyncio.Event())
        await gate.wait()
        return [Note(f"{query}-hit", query.title(), collection_id, NoteContent(), BoundProperties())]


@pytest.mark.asyncio
async def test_blank_search_term_clears_without_request() -> None:
    store = SlowSearchStore()
    search = RelationSearch(store, scope_collection_id="col-2", exclude_id="row-1")
    assert await search.update("   ") == []
    assert store.calls == []


@pytest.mark.asyncio
async def test_stale_search_responses_are_dropped() -> None:
    store = SlowSearchStore()
    search = RelationSearch(store, scope_collection_id="col-2", exclude_id="row-1")

    old = asyncio.ensure_future(search.update("al"))
    await asyncio.sleep(0)
    new = asyncio.ensure_future(search.update("alp"))
    await asyncio.sleep(0)

    store.gates["alp"].set()
    await new
    store.gates["al"].set()
    await old

    assert [r.id for r in search.results] == ["alp-hit"]
    assert store.calls[0] == ("al", "col-2", "row-1")


def test_select_appends_without_duplicates_and_clears() -> None:
    search = RelationSearch(FakeStore(), term="be")
    assert search.select(["a"], "b") == ["a", "b"]
    assert search.select(["a", "b"], "a") == ["a", "b"]
    assert search.select("not a list", "c") == ["c"]
    assert search.term == ""
