from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BlockType(str, Enum):
    PARAGRAPH = "paragraph"
    HEADING1 = "heading1"
    HEADING2 = "heading2"
    COLLECTION_VIEW = "collection_view"


def parse_block_type(raw: Any) -> BlockType | None:
    try:
        return BlockType(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class ContentBlock:
    id: str
    type: BlockType
    text: str | None = None
    collection_id: str | None = None

    @classmethod
    def new(cls, block_type: BlockType, text: str = "", collection_id: str | None = None) -> ContentBlock:
        if block_type is BlockType.COLLECTION_VIEW:
            return cls(id=str(uuid.uuid4()), type=block_type, text=None, collection_id=collection_id)
        return cls(id=str(uuid.uuid4()), type=block_type, text=text, collection_id=None)

    def retyped(self, block_type: BlockType, collection_id: str | None = None) -> ContentBlock:
        if block_type is BlockType.COLLECTION_VIEW:
            return ContentBlock(id=self.id, type=block_type, text=None, collection_id=collection_id)
        return ContentBlock(id=self.id, type=block_type, text="", collection_id=None)

    def with_text(self, text: str) -> ContentBlock:
        if self.type is BlockType.COLLECTION_VIEW:
            return self
        return ContentBlock(id=self.id, type=self.type, text=text, collection_id=None)

    @property
    def is_empty(self) -> bool:
        return self.type is not BlockType.COLLECTION_VIEW and not self.text

    @classmethod
    def from_raw(cls, raw: Any) -> ContentBlock | None:
        if not isinstance(raw, dict):
            return None
        block_id = raw.get("id")
        block_type = parse_block_type(raw.get("type"))
        if not isinstance(block_id, str) or not block_id or block_type is None:
            return None
        if block_type is BlockType.COLLECTION_VIEW:
            collection_id = raw.get("collectionId", raw.get("collection_id"))
            if not isinstance(collection_id, str) or not collection_id:
                return None
            return cls(id=block_id, type=block_type, collection_id=collection_id)
        text = raw.get("text")
        return cls(id=block_id, type=block_type, text=text if isinstance(text, str) else "")

    def to_raw(self) -> dict:
        if self.type is BlockType.COLLECTION_VIEW:
            return {"id": self.id, "type": self.type.value, "collectionId": self.collection_id}
        return {"id": self.id, "type": self.type.value, "text": self.text or ""}


@dataclass(frozen=True)
class NoteContent:
    text: str = ""
    blocks: tuple[ContentBlock, ...] = ()
    # keys written by other clients, carried through saves untouched
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Any) -> NoteContent:
        if not isinstance(raw, dict):
            return cls()
        text = raw.get("text")
        raw_blocks = raw.get("blocks")
        blocks: list[ContentBlock] = []
        if isinstance(raw_blocks, list):
            for item in raw_blocks:
                block = ContentBlock.from_raw(item)
                if block is not None:
                    blocks.append(block)
        extra = {k: v for k, v in raw.items() if k not in ("text", "blocks")}
        return cls(text=text if isinstance(text, str) else "", blocks=tuple(blocks), extra=extra)

    def to_raw(self) -> dict:
        data = dict(self.extra)
        data["text"] = self.text
        data["blocks"] = [b.to_raw() for b in self.blocks]
        return data

    def merged(self, *, text: str, blocks: tuple[ContentBlock, ...] | list[ContentBlock]) -> NoteContent:
        return NoteContent(text=text, blocks=tuple(blocks), extra=dict(self.extra))
