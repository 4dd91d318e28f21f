from insanus_notes.blocks import (
    BlockEditor,
    BlockFocus,
    BlockSlot,
    BufferFocus,
    BufferLine,
    CommandOpen,
    FocusQueue,
    MenuMode,
)
from insanus_notes.domain.content import BlockType, ContentBlock, NoteContent
from insanus_notes.domain.entities import Collection


def test_slash_on_new_line_becomes_heading_block() -> None:
    changes: list[int] = []
    editor = BlockEditor(on_change=lambda: changes.append(1))

    editor.change_buffer("Hello\n/")
    assert editor.state == CommandOpen(anchor=BufferLine(1), origin_line_text="")

    block = editor.select_command(BlockType.HEADING1)

    assert editor.text == "Hello"
    assert [(b.type, b.text) for b in editor.blocks] == [(BlockType.HEADING1, "")]
    assert not editor.menu_open
    assert editor.focus.pending == BlockFocus(block.id)
    assert len(changes) == 2


def test_slash_mid_line_keeps_text_before_trigger() -> None:
    editor = BlockEditor()
    editor.change_buffer("one\nIdeas /h")
    editor.change_buffer("one\nIdeas /", cursor=len("one\nIdeas /"))
    editor.select_command(BlockType.PARAGRAPH)

    assert editor.text == "one"
    assert editor.blocks[0].text == "Ideas"


def test_menu_closes_when_buffer_edit_has_no_trigger() -> None:
    editor = BlockEditor()
    editor.change_buffer("/")
    assert editor.menu_open
    editor.change_buffer("")
    assert not editor.menu_open


def test_select_without_open_menu_is_noop() -> None:
    editor = BlockEditor(text="keep")
    assert editor.select_command(BlockType.HEADING2) is None
    assert editor.text == "keep"
    assert editor.blocks == []


def test_collection_view_requires_a_collection() -> None:
    editor = BlockEditor()
    editor.change_buffer("/")
    assert editor.select_command(BlockType.COLLECTION_VIEW) is None
    assert editor.menu_open

    block = editor.select_command(BlockType.COLLECTION_VIEW, "col-1")
    assert block.collection_id == "col-1"
    assert block.text is None
    assert editor.focus.pending == BufferFocus()


def test_slash_in_empty_block_retypes_in_place() -> None:
    first = ContentBlock.new(BlockType.PARAGRAPH, "intro")
    empty = ContentBlock.new(BlockType.PARAGRAPH)
    editor = BlockEditor(blocks=[first, empty])

    assert editor.key_in_block(empty.id, "/") is True
    assert editor.state == CommandOpen(anchor=BlockSlot(1), origin_line_text="")

    retyped = editor.select_command(BlockType.HEADING2)

    assert retyped.id == empty.id
    assert [b.type for b in editor.blocks] == [BlockType.PARAGRAPH, BlockType.HEADING2]


def test_slash_in_non_empty_block_is_plain_input() -> None:
    block = ContentBlock.new(BlockType.PARAGRAPH, "text")
    editor = BlockEditor(blocks=[block])
    assert editor.key_in_block(block.id, "/") is False
    assert not editor.menu_open


def test_typing_into_anchored_block_closes_menu() -> None:
    block = ContentBlock.new(BlockType.PARAGRAPH)
    editor = BlockEditor(blocks=[block])
    editor.open_in_block(block.id)
    editor.change_block_text(block.id, "x")
    assert not editor.menu_open
    assert editor.blocks[0].text == "x"


def test_enter_inserts_paragraph_after_and_focuses_it() -> None:
    a = ContentBlock.new(BlockType.HEADING1, "Title")
    b = ContentBlock.new(BlockType.PARAGRAPH, "body")
    editor = BlockEditor(blocks=[a, b])

    assert editor.key_in_block(a.id, "Enter") is True

    assert [x.id for x in editor.blocks][0] == a.id
    inserted = editor.blocks[1]
    assert inserted.type is BlockType.PARAGRAPH
    assert editor.blocks[2].id == b.id
    assert editor.focus.pending == BlockFocus(inserted.id)


def test_backspace_on_empty_block_focuses_previous_text_block() -> None:
    text = ContentBlock.new(BlockType.PARAGRAPH, "keep")
    view = ContentBlock.new(BlockType.COLLECTION_VIEW, collection_id="col-1")
    empty = ContentBlock.new(BlockType.PARAGRAPH)
    editor = BlockEditor(blocks=[text, view, empty])

    assert editor.key_in_block(empty.id, "Backspace") is True

    assert [b.id for b in editor.blocks] == [text.id, view.id]
    assert editor.focus.pending == BlockFocus(text.id)


def test_backspace_on_first_block_focuses_buffer() -> None:
    empty = ContentBlock.new(BlockType.HEADING2)
    editor = BlockEditor(blocks=[empty])
    editor.key_in_block(empty.id, "Backspace")
    assert editor.blocks == []
    assert editor.focus.pending == BufferFocus()


def test_backspace_on_non_empty_block_is_not_consumed() -> None:
    block = ContentBlock.new(BlockType.PARAGRAPH, "a")
    editor = BlockEditor(blocks=[block])
    assert editor.key_in_block(block.id, "Backspace") is False
    assert len(editor.blocks) == 1


def test_menu_switches_to_collections_and_back() -> None:
    collections = [Collection("c1", "Projects"), Collection("c2", "Reading")]
    editor = BlockEditor(collections=collections)
    editor.change_buffer("/")

    table_item = [i for i in editor.menu.items() if i.opens_collections][0]
    assert editor.select_item(table_item) is None
    assert editor.menu.mode is MenuMode.COLLECTIONS
    assert [i.label for i in editor.menu.items()] == ["Projects", "Reading"]

    editor.menu.back()
    assert editor.menu.mode is MenuMode.ROOT

    editor.menu.show_collections()
    block = editor.select_item(editor.menu.items()[1])
    assert block.collection_id == "c2"
    assert editor.menu.mode is MenuMode.ROOT


def test_collections_menu_is_empty_without_collections() -> None:
    editor = BlockEditor()
    editor.change_buffer("/")
    editor.menu.show_collections()
    assert editor.menu.items() == []


def test_focus_queue_waits_for_control() -> None:
    queue = FocusQueue()
    queue.request(BlockFocus("b1"))

    assert queue.drain(lambda target: None) is None
    assert queue.pending == BlockFocus("b1")

    assert queue.drain(lambda target: f"handle:{target.block_id}") == "handle:b1"
    assert queue.pending is None


def test_to_content_keeps_unknown_keys_of_base() -> None:
    base = NoteContent(text="old", extra={"cover": "blue"})
    editor = BlockEditor.from_content(base)
    editor.change_buffer("new")

    content = editor.to_content(base)

    assert content.text == "new"
    assert content.extra == {"cover": "blue"}


def test_slash_mid_line_keeps_rest_of_line() -> None:
    editor = BlockEditor(text="hello world")
    editor.change_buffer("hello/ world", cursor=6)
    assert editor.state == CommandOpen(anchor=BufferLine(0), origin_line_text="hello world")

    block = editor.select_command(BlockType.HEADING1)

    assert block.text == "hello world"
    assert editor.text == ""


def test_slash_between_words_only_removes_the_trigger() -> None:
    editor = BlockEditor(text="first\nhelloworld")
    editor.change_buffer("first\nhello/world", cursor=len("first\nhello/"))

    block = editor.select_command(BlockType.PARAGRAPH)

    assert block.text == "helloworld"
    assert editor.text == "first"
