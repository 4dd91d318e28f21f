from __future__ import annotations

from typing import Any, Optional

import yaml

from insanus_notes.domain.content import BlockType, ContentBlock
from insanus_notes.domain.entities import BoundProperties, Collection, FreeformProperties, Note
from insanus_notes.domain.schema_model import coerce_for_edit


def render_markdown_with_frontmatter(frontmatter: dict, body: str) -> str:
    if not frontmatter:
        return body
    yaml_text = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True).strip("\n")
    return f"---\n{yaml_text}\n---\n\n{body.lstrip()}"


def note_frontmatter(note: Note, collection: Optional[Collection] = None) -> dict[str, Any]:
    frontmatter: dict[str, Any] = {"title": note.title}
    if isinstance(note.properties, FreeformProperties):
        for prop in note.properties.items:
            if prop.label:
                frontmatter.setdefault(prop.label, prop.value)
    elif isinstance(note.properties, BoundProperties) and collection is not None:
        for definition in collection.schema:
            frontmatter.setdefault(definition.name, coerce_for_edit(definition.type, note.properties.get(definition.id)))
    return frontmatter


def _render_block(block: ContentBlock) -> str:
    if block.type is BlockType.HEADING1:
        return f"# {block.text or ''}".rstrip()
    if block.type is BlockType.HEADING2:
        return f"## {block.text or ''}".rstrip()
    if block.type is BlockType.COLLECTION_VIEW:
        return f"<!-- collection:{block.collection_id} -->"
    return block.text or ""


def render_note_markdown(note: Note, collection: Optional[Collection] = None) -> str:
    """Markdown for ``note``: title and properties as YAML frontmatter, then blocks and text."""
    parts = [_render_block(b) for b in note.content.blocks]
    if note.content.text.strip():
        parts.append(note.content.text.strip("\n"))
    body = "\n\n".join(p for p in parts if p) + "\n"
    return render_markdown_with_frontmatter(note_frontmatter(note, collection), body)
