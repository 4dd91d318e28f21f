"""
Block editing and the slash-command menu.

A note body is a plain-text buffer plus an ordered list of blocks shown
above it. Typing ``/`` opens the command menu anchored either to a line of
the buffer or to an empty block; choosing a command turns that line into a
new block, or retypes the block in place.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar, Union

from insanus_notes.domain.content import BlockType, ContentBlock, NoteContent
from insanus_notes.domain.entities import Collection

H = TypeVar("H")


@dataclass(frozen=True)
class BufferLine:
    index: int


@dataclass(frozen=True)
class BlockSlot:
    index: int


Anchor = Union[BufferLine, BlockSlot]


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class CommandOpen:
    anchor: Anchor
    origin_line_text: str


EditorState = Union[Idle, CommandOpen]

IDLE = Idle()


@dataclass(frozen=True)
class BlockFocus:
    block_id: str


@dataclass(frozen=True)
class BufferFocus:
    pass


FocusTarget = Union[BlockFocus, BufferFocus]


class FocusQueue:
    """Holds a focus request until the control it points at exists.

    The presentation layer calls ``drain`` after each render with a lookup
    that returns the control handle, or None when it is not built yet.
    """

    def __init__(self) -> None:
        self._pending: Optional[FocusTarget] = None

    @property
    def pending(self) -> Optional[FocusTarget]:
        return self._pending

    def request(self, target: FocusTarget) -> None:
        self._pending = target

    def clear(self) -> None:
        self._pending = None

    def drain(self, lookup: Callable[[FocusTarget], Optional[H]]) -> Optional[H]:
        if self._pending is None:
            return None
        handle = lookup(self._pending)
        if handle is None:
            return None
        self._pending = None
        return handle


class MenuMode(str, Enum):
    ROOT = "root"
    COLLECTIONS = "collections"


@dataclass(frozen=True)
class MenuItem:
    label: str
    hint: str
    block_type: Optional[BlockType] = None
    collection_id: Optional[str] = None
    opens_collections: bool = False


ROOT_ITEMS = (
    MenuItem("/text", "Paragraph", BlockType.PARAGRAPH),
    MenuItem("/h1", "Heading", BlockType.HEADING1),
    MenuItem("/h2", "Subheading", BlockType.HEADING2),
    MenuItem("/table", "Collection view", opens_collections=True),
)


class CommandMenu:
    def __init__(self, collections: Optional[list[Collection]] = None) -> None:
        self.mode = MenuMode.ROOT
        self.collections: list[Collection] = list(collections or [])

    def items(self) -> list[MenuItem]:
        if self.mode is MenuMode.ROOT:
            return list(ROOT_ITEMS)
        return [
            MenuItem(c.name, c.id, BlockType.COLLECTION_VIEW, collection_id=c.id)
            for c in self.collections
        ]

    def show_collections(self) -> None:
        self.mode = MenuMode.COLLECTIONS

    def back(self) -> None:
        self.mode = MenuMode.ROOT

    def reset(self) -> None:
        self.mode = MenuMode.ROOT


class BlockEditor:
    def __init__(
        self,
        text: str = "",
        blocks: tuple[ContentBlock, ...] | list[ContentBlock] = (),
        *,
        collections: Optional[list[Collection]] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.text = text
        self.blocks: list[ContentBlock] = list(blocks)
        self.state: EditorState = IDLE
        self.menu = CommandMenu(collections)
        self.focus = FocusQueue()
        self._on_change = on_change

    @classmethod
    def from_content(
        cls,
        content: NoteContent,
        *,
        collections: Optional[list[Collection]] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> BlockEditor:
        return cls(content.text, content.blocks, collections=collections, on_change=on_change)

    def to_content(self, base: Optional[NoteContent] = None) -> NoteContent:
        return (base or NoteContent()).merged(text=self.text, blocks=self.blocks)

    @property
    def menu_open(self) -> bool:
        return isinstance(self.state, CommandOpen)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _index_of(self, block_id: str) -> Optional[int]:
        for i, block in enumerate(self.blocks):
            if block.id == block_id:
                return i
        return None

    def _open(self, anchor: Anchor, origin_line_text: str) -> None:
        self.state = CommandOpen(anchor=anchor, origin_line_text=origin_line_text)
        self.menu.reset()

    def close_menu(self) -> None:
        self.state = IDLE
        self.menu.reset()

    def change_buffer(self, text: str, cursor: Optional[int] = None) -> None:
        """Apply a buffer edit; ``cursor`` defaults to the end of the text."""
        self.text = text
        pos = len(text) if cursor is None else max(0, min(cursor, len(text)))
        if pos > 0 and text[pos - 1] == "/":
            before = text[:pos]
            line_start = before.rfind("\n") + 1
            line_end = text.find("\n", pos)
            if line_end == -1:
                line_end = len(text)
            origin = text[line_start : pos - 1] + text[pos:line_end]
            self._open(BufferLine(before.count("\n")), origin)
        elif isinstance(self.state, CommandOpen) and isinstance(self.state.anchor, BufferLine):
            self.close_menu()
        self._changed()

    def open_in_block(self, block_id: str) -> bool:
        idx = self._index_of(block_id)
        if idx is None or not self.blocks[idx].is_empty:
            return False
        self._open(BlockSlot(idx), "")
        return True

    def select_command(self, block_type: BlockType, collection_id: Optional[str] = None) -> Optional[ContentBlock]:
        state = self.state
        if not isinstance(state, CommandOpen):
            return None
        if block_type is BlockType.COLLECTION_VIEW and not collection_id:
            return None

        if isinstance(state.anchor, BufferLine):
            lines = self.text.split("\n")
            if state.anchor.index >= len(lines):
                self.close_menu()
                return None
            # the origin line was captured without the trigger when the menu opened
            del lines[state.anchor.index]
            self.text = "\n".join(lines)
            block = ContentBlock.new(block_type, state.origin_line_text.strip(), collection_id)
            self.blocks.append(block)
        else:
            idx = state.anchor.index
            if idx >= len(self.blocks):
                self.close_menu()
                return None
            block = self.blocks[idx].retyped(block_type, collection_id)
            self.blocks[idx] = block

        if block_type is BlockType.COLLECTION_VIEW:
            self.focus.request(BufferFocus())
        else:
            self.focus.request(BlockFocus(block.id))
        self.close_menu()
        self._changed()
        return block

    def select_item(self, item: MenuItem) -> Optional[ContentBlock]:
        if item.opens_collections:
            self.menu.show_collections()
            return None
        if item.block_type is None:
            return None
        return self.select_command(item.block_type, item.collection_id)

    def change_block_text(self, block_id: str, text: str) -> None:
        idx = self._index_of(block_id)
        if idx is None:
            return
        self.blocks[idx] = self.blocks[idx].with_text(text)
        state = self.state
        if text and isinstance(state, CommandOpen) and state.anchor == BlockSlot(idx):
            self.close_menu()
        self._changed()

    def insert_paragraph_after(self, block_id: str) -> Optional[ContentBlock]:
        idx = self._index_of(block_id)
        if idx is None:
            return None
        block = ContentBlock.new(BlockType.PARAGRAPH)
        self.blocks.insert(idx + 1, block)
        self.focus.request(BlockFocus(block.id))
        self._changed()
        return block

    def remove_block(self, block_id: str) -> bool:
        idx = self._index_of(block_id)
        if idx is None:
            return False
        del self.blocks[idx]
        if isinstance(self.state, CommandOpen) and isinstance(self.state.anchor, BlockSlot):
            self.close_menu()
        self.focus.request(self._focus_before(idx))
        self._changed()
        return True

    def _focus_before(self, idx: int) -> FocusTarget:
        for block in reversed(self.blocks[:idx]):
            if block.type is not BlockType.COLLECTION_VIEW:
                return BlockFocus(block.id)
        return BufferFocus()

    def key_in_block(self, block_id: str, key: str) -> bool:
        """Handle a key pressed inside a block's text control.

        Returns True when the key was consumed and its default input
        behaviour should be suppressed.
        """
        idx = self._index_of(block_id)
        if idx is None:
            return False
        block = self.blocks[idx]
        if key == "Enter":
            return self.insert_paragraph_after(block_id) is not None
        if key == "Backspace" and block.is_empty:
            return self.remove_block(block_id)
        if key == "/" and block.is_empty:
            return self.open_in_block(block_id)
        return False
