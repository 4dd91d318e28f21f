from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from insanus_notes.domain.content import NoteContent
from insanus_notes.domain.entities import Collection, Note, NoteSummary
from insanus_notes.domain.schema_model import PropertyType
from insanus_notes.properties import PropertyControl
from insanus_notes.table import TableModel


class PropertyDefinitionOut(BaseModel):
    id: str
    name: str
    type: str
    options: Optional[list[str]] = None
    relation_collection_id: Optional[str] = None


class CollectionOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    schema_: list[PropertyDefinitionOut] = Field(default_factory=list, alias="schema")
    created_at: str = ""

    model_config = {"populate_by_name": True}

    @classmethod
    def of(cls, collection: Collection) -> CollectionOut:
        return cls(
            id=collection.id,
            name=collection.name,
            description=collection.description,
            schema=[PropertyDefinitionOut(**d.to_raw()) for d in collection.schema],
            created_at=collection.created_at,
        )


class CollectionCreateIn(BaseModel):
    name: str
    description: Optional[str] = None


class PropertyDefinitionCreateIn(BaseModel):
    name: str
    type: PropertyType = PropertyType.TEXT
    options: str = ""
    relation_collection_id: Optional[str] = None


class NoteSummaryOut(BaseModel):
    id: str
    title: str
    collection_id: Optional[str] = None

    @classmethod
    def of(cls, summary: NoteSummary) -> NoteSummaryOut:
        return cls(id=summary.id, title=summary.title, collection_id=summary.collection_id)


class NoteOut(BaseModel):
    id: str
    title: str
    collection_id: Optional[str] = None
    content: dict[str, Any] = Field(default_factory=dict)
    properties: Any = None
    created_at: str = ""

    @classmethod
    def of(cls, note: Note) -> NoteOut:
        record = note.to_record()
        return cls(**record)


class NoteCreateIn(BaseModel):
    collection_id: Optional[str] = None
    title: Optional[str] = None


class NoteUpdateIn(BaseModel):
    title: Optional[str] = None
    content: Optional[dict[str, Any]] = None
    properties: Optional[dict[str, Any]] = None

    def content_onto(self, base: NoteContent) -> NoteContent:
        """Layer the submitted content keys over ``base``; absent keys keep their stored value."""
        if self.content is None:
            return base
        parsed = NoteContent.from_raw(self.content)
        return NoteContent(
            text=parsed.text if "text" in self.content else base.text,
            blocks=parsed.blocks if "blocks" in self.content else base.blocks,
            extra={**base.extra, **parsed.extra},
        )


class PropertyCreateIn(BaseModel):
    label: str
    value_type: Literal["text", "number", "date", "status"] = "text"


class PropertyValueIn(BaseModel):
    value: str


class PropertyOut(BaseModel):
    id: str
    page_id: Optional[str] = None
    label: str
    value_type: str
    value: str


class PropertyControlOut(BaseModel):
    key: str
    label: str
    control: str
    value: Any = None
    options: list[str] = Field(default_factory=list)
    relation_collection_id: Optional[str] = None
    bound: bool = False

    @classmethod
    def of(cls, control: PropertyControl) -> PropertyControlOut:
        return cls(
            key=control.key,
            label=control.label,
            control=control.control,
            value=control.value,
            options=list(control.options),
            relation_collection_id=control.relation_collection_id,
            bound=control.bound,
        )


class TableColumnOut(BaseModel):
    key: str
    label: str
    control: str
    options: list[str] = Field(default_factory=list)


class TableRowOut(BaseModel):
    note_id: str
    title: str
    cells: dict[str, Any] = Field(default_factory=dict)
    targets: dict[str, list[NoteSummaryOut]] = Field(default_factory=dict)


class TableOut(BaseModel):
    collection_id: str
    name: str
    columns: list[TableColumnOut]
    rows: list[TableRowOut]

    @classmethod
    def of(cls, table: TableModel) -> TableOut:
        return cls(
            collection_id=table.collection_id,
            name=table.name,
            columns=[TableColumnOut(key=c.key, label=c.label, control=c.control, options=list(c.options)) for c in table.columns],
            rows=[
                TableRowOut(
                    note_id=r.note_id,
                    title=r.title,
                    cells={c.key: c.value for c in r.cells},
                    targets={c.key: [NoteSummaryOut.of(t) for t in c.targets] for c in r.cells if c.control == "relation"},
                )
                for r in table.rows
            ],
        )


class MarkdownOut(BaseModel):
    id: str
    markdown: str
