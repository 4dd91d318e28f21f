import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from insanus_notes.config import Settings
from insanus_notes.dependencies import get_settings, get_store
from insanus_notes.domain.entities import BoundProperties, Note, NoteSummary
from insanus_notes.domain.exceptions import NotFound, StoreError, ValidationSkip
from insanus_notes.domain.ports import EntityStore
from insanus_notes.domain.schema_model import new_definition, validate_value
from insanus_notes.domain.schemas import (
    CollectionCreateIn,
    CollectionOut,
    MarkdownOut,
    NoteCreateIn,
    NoteOut,
    NoteSummaryOut,
    NoteUpdateIn,
    PropertyControlOut,
    PropertyCreateIn,
    PropertyDefinitionCreateIn,
    PropertyOut,
    PropertyValueIn,
    TableOut,
)
from insanus_notes.export import render_note_markdown
from insanus_notes.properties import RelationResolver, build_property_panel
from insanus_notes.table import build_table, relation_ids_in

router = APIRouter()
logger = logging.getLogger("insanus.api")


def _http_error(e: StoreError) -> HTTPException:
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=e.message)
    return HTTPException(status_code=502, detail=e.message)


async def _collection_of(store: EntityStore, note: Note):
    if note.collection_id is None:
        return None
    return await store.get_collection(note.collection_id)


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/collections", response_model=list[CollectionOut])
async def list_collections(store: EntityStore = Depends(get_store)):
    try:
        return [CollectionOut.of(c) for c in await store.list_collections()]
    except StoreError as e:
        raise _http_error(e) from e


@router.post("/collections", response_model=CollectionOut)
async def create_collection(payload: CollectionCreateIn, request: Request, store: EntityStore = Depends(get_store)):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="collection_name_empty")
    try:
        collection = await store.create_collection(name, payload.description)
    except StoreError as e:
        raise _http_error(e) from e
    logger.info("collection_create", extra={"rid": request.state.request_id, "id": collection.id})
    return CollectionOut.of(collection)


@router.get("/collections/{collection_id}", response_model=CollectionOut)
async def get_collection(collection_id: str, store: EntityStore = Depends(get_store)):
    try:
        return CollectionOut.of(await store.get_collection(collection_id))
    except StoreError as e:
        raise _http_error(e) from e


@router.post("/collections/{collection_id}/properties", response_model=CollectionOut)
async def add_schema_property(
    collection_id: str,
    payload: PropertyDefinitionCreateIn,
    request: Request,
    store: EntityStore = Depends(get_store),
):
    try:
        collection = await store.get_collection(collection_id)
        definition = new_definition(payload.name, payload.type, payload.options, payload.relation_collection_id)
        updated = await store.update_collection_schema(collection_id, list(collection.schema) + [definition])
    except ValidationSkip as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StoreError as e:
        raise _http_error(e) from e
    logger.info("schema_update", extra={"rid": request.state.request_id, "id": collection_id, "definition": definition.id})
    return CollectionOut.of(updated)


@router.get("/collections/{collection_id}/table", response_model=TableOut)
async def get_table(collection_id: str, store: EntityStore = Depends(get_store)):
    try:
        collection = await store.get_collection(collection_id)
        notes = await store.list_notes(collection_id)
    except StoreError as e:
        raise _http_error(e) from e
    relations = RelationResolver(store)
    ids = relation_ids_in(collection, notes)
    if ids:
        await relations.resolve(ids)
    return TableOut.of(build_table(collection, notes, relations))


@router.get("/notes", response_model=list[NoteOut])
async def list_notes(collection_id: Optional[str] = None, store: EntityStore = Depends(get_store)):
    try:
        return [NoteOut.of(n) for n in await store.list_notes(collection_id)]
    except StoreError as e:
        raise _http_error(e) from e


@router.get("/notes/search", response_model=list[NoteSummaryOut])
async def search_notes(
    q: str = "",
    collection_id: Optional[str] = None,
    exclude_id: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    store: EntityStore = Depends(get_store),
):
    if not q.strip():
        return []
    try:
        notes = await store.search_notes(q, collection_id, exclude_id, limit)
    except StoreError as e:
        raise _http_error(e) from e
    return [NoteSummaryOut.of(NoteSummary.of(n)) for n in notes]


@router.post("/notes", response_model=NoteOut)
async def create_note(payload: NoteCreateIn, request: Request, store: EntityStore = Depends(get_store)):
    try:
        note = await store.create_note(payload.collection_id, payload.title)
    except StoreError as e:
        raise _http_error(e) from e
    logger.info("note_create", extra={"rid": request.state.request_id, "id": note.id})
    return NoteOut.of(note)


@router.get("/notes/{note_id}", response_model=NoteOut)
async def get_note(note_id: str, store: EntityStore = Depends(get_store)):
    try:
        return NoteOut.of(await store.get_note(note_id))
    except StoreError as e:
        raise _http_error(e) from e


@router.patch("/notes/{note_id}", response_model=NoteOut)
async def update_note(
    note_id: str,
    payload: NoteUpdateIn,
    request: Request,
    store: EntityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    try:
        existing = await store.get_note(note_id)
        title = None
        if payload.title is not None:
            title = payload.title.strip() or settings.default_note_title
        content = None
        if payload.content is not None:
            content = payload.content_onto(existing.content)
        properties = None
        if payload.properties is not None:
            collection = await _collection_of(store, existing)
            if collection is None or not isinstance(existing.properties, BoundProperties):
                raise HTTPException(status_code=409, detail="properties_shape_mismatch")
            values = dict(existing.properties.values)
            for key, value in payload.properties.items():
                definition = collection.definition(key)
                if definition is None:
                    continue
                try:
                    values[key] = validate_value(definition, value)
                except ValidationSkip:
                    continue
            properties = BoundProperties(values)
        note = await store.update_note(note_id, title=title, content=content, properties=properties)
    except StoreError as e:
        raise _http_error(e) from e
    logger.info("note_update", extra={"rid": request.state.request_id, "id": note_id})
    return NoteOut.of(note)


@router.delete("/notes/{note_id}")
async def delete_note(note_id: str, request: Request, store: EntityStore = Depends(get_store)):
    try:
        await store.delete_note(note_id)
    except StoreError as e:
        raise _http_error(e) from e
    logger.info("note_delete", extra={"rid": request.state.request_id, "id": note_id})
    return {"ok": True}


@router.get("/notes/{note_id}/properties", response_model=list[PropertyControlOut])
async def get_property_panel(note_id: str, store: EntityStore = Depends(get_store)):
    try:
        note = await store.get_note(note_id)
        collection = await _collection_of(store, note)
    except StoreError as e:
        raise _http_error(e) from e
    return [PropertyControlOut.of(c) for c in build_property_panel(note, collection)]


@router.post("/notes/{note_id}/properties", response_model=PropertyOut)
async def create_property(
    note_id: str,
    payload: PropertyCreateIn,
    request: Request,
    store: EntityStore = Depends(get_store),
):
    label = payload.label.strip()
    if not label:
        return Response(status_code=204)
    try:
        prop = await store.create_property(note_id, label, payload.value_type)
    except StoreError as e:
        if e.message == "note_is_schema_bound":
            raise HTTPException(status_code=409, detail=e.message) from e
        raise _http_error(e) from e
    logger.info("property_create", extra={"rid": request.state.request_id, "id": prop.id, "note_id": note_id})
    return PropertyOut(**prop.to_raw())


@router.put("/properties/{property_id}")
async def update_property(property_id: str, payload: PropertyValueIn, store: EntityStore = Depends(get_store)):
    try:
        await store.update_property(property_id, payload.value)
    except StoreError as e:
        raise _http_error(e) from e
    return {"ok": True}


@router.get("/notes/{note_id}/markdown", response_model=MarkdownOut)
async def get_note_markdown(note_id: str, store: EntityStore = Depends(get_store)):
    try:
        note = await store.get_note(note_id)
        collection = await _collection_of(store, note)
    except StoreError as e:
        raise _http_error(e) from e
    return MarkdownOut(id=note.id, markdown=render_note_markdown(note, collection))
