import pathlib
import sys

import pytest
from pydantic import ValidationError

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from workspace_sync.domain.tree import find_violations  # noqa: E402
from workspace_sync.errors import BlockDataError, DocumentTreeError, NotAuthenticatedError  # noqa: E402


def _tree_ok(controller):
    return find_violations(controller.state.pages, controller.state.root_pages) == []


@pytest.mark.asyncio
async def test_create_document_is_visible_before_persisting(ready, store):
    page_id = ready.create_document("Notes")
    assert page_id in ready.state.pages
    assert ready.state.root_pages == [page_id]
    assert ready.state.current_page_id == page_id
    assert store.rows("pages") == []
    assert ready.pending_writes == 1

    await ready.drain()
    assert ready.pending_writes == 0
    rows = store.rows("pages")
    assert [row["id"] for row in rows] == [page_id]
    assert rows[0]["user_id"] == "user-1"
    assert ready.error is None


@pytest.mark.asyncio
async def test_create_child_links_parent_remotely(ready, store):
    parent = ready.create_document("Notes")
    child = ready.create_document("Sub", parent_id=parent)
    assert ready.state.pages[parent].children == [child]
    assert ready.state.pages[child].parent_id == parent
    assert _tree_ok(ready)

    await ready.drain()
    assert store.tables["pages"][parent]["children"] == [child]
    assert store.tables["pages"][child]["parent_id"] == parent


@pytest.mark.asyncio
async def test_create_document_rolls_back_on_failure(ready, store):
    parent = ready.create_document("Notes")
    await ready.drain()
    before_children = list(ready.state.pages[parent].children)

    store.fail("pages", "insert")
    child = ready.create_document("Sub", parent_id=parent)
    await ready.drain()

    assert child not in ready.state.pages
    assert ready.state.pages[parent].children == before_children
    assert ready.error and "Failed to create page" in ready.error
    assert _tree_ok(ready)


@pytest.mark.asyncio
async def test_create_under_unknown_parent_raises(ready):
    with pytest.raises(DocumentTreeError):
        ready.create_document("Lost", parent_id="missing")


@pytest.mark.asyncio
async def test_mutations_need_a_user(controller):
    with pytest.raises(NotAuthenticatedError):
        controller.create_document("Nobody")


@pytest.mark.asyncio
async def test_update_document_rolls_back_written_fields(ready, store):
    page_id = ready.create_document("Draft")
    await ready.drain()

    store.fail("pages", "update")
    ready.update_document(page_id, title="Final", icon="star")
    assert ready.state.pages[page_id].title == "Final"
    await ready.drain()

    page = ready.state.pages[page_id]
    assert (page.title, page.icon) == ("Draft", "document")
    assert ready.error == f"Failed to update page {page_id}"


@pytest.mark.asyncio
async def test_rollback_keeps_newer_edits(ready, store):
    page_id = ready.create_document("Draft")
    await ready.drain()

    store.fail("pages", "update")
    ready.update_document(page_id, title="First")
    ready.update_document(page_id, content="body")
    ready.update_document(page_id, title="Second")
    await ready.drain()

    # Every write failed: each rollback only touches fields still holding its value.
    page = ready.state.pages[page_id]
    assert page.content == ""
    assert page.title == "First"


@pytest.mark.asyncio
async def test_update_document_rejects_unknown_fields(ready):
    page_id = ready.create_document("Draft")
    with pytest.raises(ValueError):
        ready.update_document(page_id, parent_id="elsewhere")
    with pytest.raises(KeyError):
        ready.update_document("missing", title="x")
    await ready.drain()


@pytest.mark.asyncio
async def test_update_document_rejects_bad_values(ready, store):
    page_id = ready.create_document("Draft")
    await ready.drain()

    with pytest.raises(ValidationError):
        ready.update_document(page_id, title=None)
    with pytest.raises(ValidationError):
        ready.update_document(page_id, is_expanded="banana")

    page = ready.state.pages[page_id]
    assert page.title == "Draft"
    assert page.is_expanded is False
    assert ready.pending_writes == 0
    assert store.tables["pages"][page_id]["title"] == "Draft"


@pytest.mark.asyncio
async def test_toggle_page_expansion_persists(ready, store):
    page_id = ready.create_document("Folder")
    ready.toggle_page_expansion(page_id)
    await ready.drain()
    assert ready.state.pages[page_id].is_expanded is True
    assert store.tables["pages"][page_id]["is_expanded"] is True


@pytest.mark.asyncio
async def test_delete_notes_removes_sub_leaves_first(ready, store):
    notes = ready.create_document("Notes")
    sub = ready.create_document("Sub", parent_id=notes)
    await ready.drain()
    store.calls.clear()

    assert await ready.delete_document(notes) is True

    assert ready.state.pages == {}
    assert ready.state.root_pages == []
    deletes = [record_id for table, op, record_id in store.calls if op == "delete"]
    assert deletes == [sub, notes]
    assert store.rows("pages") == []


@pytest.mark.asyncio
async def test_delete_keeps_pages_the_store_refused(ready, store):
    notes = ready.create_document("Notes")
    sub = ready.create_document("Sub", parent_id=notes)
    leaf = ready.create_document("Leaf", parent_id=sub)
    await ready.drain()

    store.fail("pages", "delete", ids=[sub])
    assert await ready.delete_document(notes) is False

    assert leaf not in ready.state.pages
    assert set(ready.state.pages) == {notes, sub}
    assert ready.state.pages[sub].children == []
    assert ready.error == f"Failed to delete page {notes}"
    assert _tree_ok(ready)


@pytest.mark.asyncio
async def test_delete_child_updates_parent_children(ready, store):
    notes = ready.create_document("Notes")
    sub = ready.create_document("Sub", parent_id=notes)
    await ready.drain()

    assert await ready.delete_document(sub)
    assert ready.state.pages[notes].children == []
    assert store.tables["pages"][notes]["children"] == []


@pytest.mark.asyncio
async def test_move_document_and_rollback(ready, store):
    a = ready.create_document("A")
    b = ready.create_document("B")
    child = ready.create_document("Child", parent_id=a)
    await ready.drain()

    ready.move_document(child, b)
    await ready.drain()
    assert ready.state.pages[b].children == [child]
    assert ready.state.pages[a].children == []
    assert store.tables["pages"][child]["parent_id"] == b
    assert _tree_ok(ready)

    store.fail("pages", "update", ids=[a])
    ready.move_document(child, a)
    assert ready.state.pages[child].parent_id == a
    await ready.drain()

    assert ready.state.pages[child].parent_id == b
    assert ready.state.pages[b].children == [child]
    assert ready.state.pages[a].children == []
    assert store.tables["pages"][child]["parent_id"] == b
    assert store.tables["pages"][b]["children"] == [child]
    assert ready.error == f"Failed to move page {child}"
    assert _tree_ok(ready)


@pytest.mark.asyncio
async def test_move_document_rejects_cycles(ready):
    a = ready.create_document("A")
    b = ready.create_document("B", parent_id=a)
    with pytest.raises(DocumentTreeError):
        ready.move_document(a, b)
    await ready.drain()


@pytest.mark.asyncio
async def test_move_to_root(ready):
    a = ready.create_document("A")
    b = ready.create_document("B", parent_id=a)
    await ready.drain()
    ready.move_document(b, None)
    await ready.drain()
    assert ready.state.root_pages == [a, b]
    assert _tree_ok(ready)


@pytest.mark.asyncio
async def test_block_operations_keep_dense_order(ready, store):
    page_id = ready.create_document("Doc")
    first = ready.add_block(page_id, "text", content="hello")
    header = ready.add_block(page_id, "header", after_block_id=None, content="Title")
    table = ready.add_block(page_id, "table", after_block_id=first)
    ready.move_block(page_id, header, 0)
    ready.update_block(page_id, table, data={"rows": 1, "cols": 2, "cells": {"0-1": "x"}})
    await ready.drain()

    blocks = ready.state.pages[page_id].blocks
    assert [block.id for block in blocks] == [header, first, table]
    assert [block.order for block in blocks] == [0, 1, 2]
    stored = store.tables["pages"][page_id]["blocks"]
    assert [block["type"] for block in stored] == ["header", "text", "table"]
    assert stored[2]["data"]["cells"] == {"0-1": "x"}

    ready.delete_block(page_id, first)
    await ready.drain()
    assert [block.order for block in ready.state.pages[page_id].blocks] == [0, 1]


@pytest.mark.asyncio
async def test_block_data_is_validated(ready):
    page_id = ready.create_document("Doc")
    header = ready.add_block(page_id, "header")
    with pytest.raises(BlockDataError):
        ready.update_block(page_id, header, data={"level": 9})
    with pytest.raises(BlockDataError):
        ready.add_block(page_id, "table", data={"rows": 0, "cols": 1, "cells": {}})
    await ready.drain()


@pytest.mark.asyncio
async def test_search_and_tree_accessors(ready):
    notes = ready.create_document("Notes")
    ready.create_document("Shopping list", parent_id=notes)
    ready.set_search_query("shopping")
    assert [page.title for page in ready.search_pages()] == ["Shopping list"]
    tree = ready.page_tree()
    assert tree[0]["id"] == notes
    assert tree[0]["children"][0]["title"] == "Shopping list"
    assert ready.page_tree("")[0]["id"] == notes
    await ready.drain()


@pytest.mark.asyncio
async def test_subscribers_get_snapshots(ready):
    seen = []
    unsubscribe = ready.subscribe(seen.append)
    page_id = ready.create_document("Notes")
    assert seen and page_id in seen[-1].pages
    seen[-1].pages[page_id].title = "changed in snapshot"
    assert ready.state.pages[page_id].title == "Notes"
    unsubscribe()
    count = len(seen)
    ready.set_current_section("finance")
    assert len(seen) == count
    await ready.drain()
