import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from workspace_sync.domain import blocks, ledger, milestones, search, tree  # noqa: E402
from workspace_sync.domain.defaults import default_finance_data, default_milestones  # noqa: E402
from workspace_sync.errors import BlockDataError, DocumentTreeError  # noqa: E402
from workspace_sync.schemas.finance import Transaction, Wallet  # noqa: E402
from workspace_sync.schemas.health import QuitHabit  # noqa: E402
from workspace_sync.schemas.pages import Block, Page  # noqa: E402
from workspace_sync.schemas.tasks import DailyTask  # noqa: E402
from workspace_sync.utils.timestamps import DAY_MS  # noqa: E402


def _page(page_id, parent_id=None, children=None, title=None, updated_at=1):
    return Page(id=page_id, title=title or page_id, parent_id=parent_id, children=children or [], created_at=1, updated_at=updated_at)


def _forest():
    pages = {
        "a": _page("a", children=["b"]),
        "b": _page("b", parent_id="a", children=["c"]),
        "c": _page("c", parent_id="b"),
        "d": _page("d"),
    }
    return pages, ["a", "d"]


def test_collect_subtree_is_deepest_first():
    pages, _ = _forest()
    assert tree.collect_subtree(pages, "a") == ["c", "b", "a"]
    assert tree.collect_subtree(pages, "missing") == []


def test_check_move_rejects_cycles_and_unknown_parents():
    pages, _ = _forest()
    with pytest.raises(DocumentTreeError):
        tree.check_move(pages, "a", "c")
    with pytest.raises(DocumentTreeError):
        tree.check_move(pages, "a", "a")
    with pytest.raises(DocumentTreeError):
        tree.check_move(pages, "a", "nope")
    tree.check_move(pages, "c", "d")
    tree.check_move(pages, "c", None)


def test_attach_and_detach_keep_symmetry():
    pages, roots = _forest()
    tree.detach(pages, roots, "c", updated_at=50)
    tree.attach(pages, roots, "c", "d", updated_at=50)
    assert pages["b"].children == []
    assert pages["d"].children == ["c"]
    assert pages["c"].parent_id == "d"
    assert pages["d"].updated_at == 50
    assert tree.find_violations(pages, roots) == []

    tree.detach(pages, roots, "c")
    tree.attach(pages, roots, "c", None)
    assert roots == ["a", "d", "c"]
    assert tree.find_violations(pages, roots) == []


def test_attach_to_missing_parent_raises():
    pages, roots = _forest()
    with pytest.raises(DocumentTreeError):
        tree.attach(pages, roots, "d", "ghost")


def test_remove_subtree_detaches_from_parent():
    pages, roots = _forest()
    removed = tree.remove_subtree(pages, roots, "b")
    assert removed == ["c", "b"]
    assert set(pages) == {"a", "d"}
    assert pages["a"].children == []
    assert tree.find_violations(pages, roots) == []


def test_normalize_tree_repairs_loaded_rows():
    loaded = [
        _page("root", children=["kid", "ghost", "stranger"]),
        _page("kid", parent_id="root"),
        _page("orphan", parent_id="deleted-parent"),
        _page("stranger"),
        _page("unlisted", parent_id="root"),
        _page("x", parent_id="y"),
        _page("y", parent_id="x"),
    ]
    pages, roots = tree.normalize_tree(loaded)
    assert pages["root"].children == ["kid", "unlisted"]
    assert pages["orphan"].parent_id is None
    assert "orphan" in roots and "stranger" in roots
    assert tree.find_violations(pages, roots) == []


def test_block_data_validation():
    assert blocks.validate_block_data("header", {"level": 2}) == {"valid": True}
    assert blocks.validate_block_data("header", {"level": 4})["valid"] is False
    assert blocks.validate_block_data("text", None) == {"valid": True}
    assert blocks.validate_block_data("table", {"rows": 2, "cols": 2, "cells": {"1-1": "x"}}) == {"valid": True}
    outside = blocks.validate_block_data("table", {"rows": 2, "cols": 2, "cells": {"2-0": "x"}})
    assert outside["valid"] is False
    assert "outside" in outside["errors"][0]
    assert blocks.validate_block_data("image", {"url": "https://cdn.example/a.png"}) == {"valid": True}
    assert blocks.validate_block_data("gif", {})["valid"] is False


def test_new_block_defaults_and_rejects_bad_data():
    header = blocks.new_block("header", "Title")
    assert header.data == {"level": 1}
    table = blocks.new_block("table")
    assert (table.data["rows"], table.data["cols"]) == (3, 3)
    assert header.id.startswith("block_")
    with pytest.raises(BlockDataError):
        blocks.new_block("header", data={"level": 0})


def test_block_operations_keep_order_dense():
    first = blocks.new_block("text", "one")
    second = blocks.new_block("text", "two")
    third = blocks.new_block("text", "three")
    ordered = blocks.insert_block([], first)
    ordered = blocks.insert_block(ordered, third, after_block_id=first.id)
    ordered = blocks.insert_block(ordered, second, after_block_id=first.id)
    assert [block.content for block in ordered] == ["one", "two", "three"]
    assert [block.order for block in ordered] == [0, 1, 2]

    moved = blocks.move_block(ordered, third.id, 0)
    assert [block.content for block in moved] == ["three", "one", "two"]
    assert [block.order for block in moved] == [0, 1, 2]

    clamped = blocks.move_block(moved, third.id, 99)
    assert clamped[-1].id == third.id

    removed = blocks.remove_block(clamped, first.id)
    assert [block.order for block in removed] == [0, 1]
    with pytest.raises(KeyError):
        blocks.remove_block(removed, first.id)


def test_sort_blocks_breaks_ties_by_position():
    duplicated = [
        Block(id="x", kind="text", order=1),
        Block(id="y", kind="text", order=0),
        Block(id="z", kind="text", order=1),
    ]
    assert [block.id for block in blocks.renumber(blocks.sort_blocks(duplicated))] == ["y", "x", "z"]


def test_block_uses_type_on_the_wire():
    block = Block.model_validate({"id": "b1", "type": "header", "content": "Hi", "data": {"level": 1}, "order": 0})
    assert block.kind == "header"
    assert block.model_dump(by_alias=True)["type"] == "header"


def test_milestones_are_derived_from_quit_date():
    quit_date = 1_000_000
    habit = QuitHabit(id="h", name="Sugar", quit_date=quit_date, milestones=default_milestones(), created_at=quit_date, updated_at=quit_date)
    now = quit_date + 8 * DAY_MS + 3 * 60 * 60 * 1000
    statuses = milestones.milestone_statuses(habit, now)
    assert [status.milestone.days for status in statuses] == [1, 3, 7, 30, 90, 365]
    assert [status.reached for status in statuses] == [True, True, True, False, False, False]
    assert statuses[2].reached_at == quit_date + 7 * DAY_MS
    assert milestones.next_milestone(habit, now).milestone.days == 30
    elapsed = milestones.time_since(quit_date, now)
    assert (elapsed.days, elapsed.hours, elapsed.minutes) == (8, 3, 0)
    assert milestones.time_since(quit_date, quit_date - 10).days == 0


def test_display_category_prefers_custom_label():
    habit = QuitHabit(id="h", name="Doomscrolling", quit_date=0, category="other", custom_category="Phone", created_at=0, updated_at=0)
    assert milestones.display_category(habit) == "Phone"
    habit = habit.model_copy(update={"category": "social_media", "custom_category": None})
    assert milestones.display_category(habit) == "Social Media"


def _finance_with_wallet(balance=100.0):
    finance = default_finance_data(created_at=1)
    wallet = Wallet(id="w1", name="Main", balance=balance, created_at=1, updated_at=1)
    return finance.model_copy(update={"wallets": {"w1": wallet}})


def _transaction(txn_id="t1", amount=25.5, direction="expense", date=10):
    return Transaction(id=txn_id, wallet_id="w1", amount=amount, direction=direction, category_id="food", date=date, created_at=5, updated_at=5)


def test_ledger_applies_and_reverts_transactions():
    finance = _finance_with_wallet()
    wallets, transactions = ledger.apply_transaction(finance, _transaction())
    assert wallets["w1"].balance == 74.5
    assert "t1" in transactions
    assert finance.wallets["w1"].balance == 100.0

    applied = finance.model_copy(update={"wallets": wallets, "transactions": transactions})
    wallets, transactions = ledger.revert_transaction(applied, "t1", updated_at=6)
    assert wallets["w1"].balance == 100.0
    assert transactions == {}

    with pytest.raises(KeyError):
        ledger.apply_transaction(finance, _transaction().model_copy(update={"wallet_id": "nope"}))
    with pytest.raises(ValueError):
        ledger.apply_transaction(applied, _transaction())


def test_spending_by_category_filters_by_date_and_direction():
    finance = _finance_with_wallet()
    finance = finance.model_copy(
        update={
            "transactions": {
                "t1": _transaction("t1", 10, date=10),
                "t2": _transaction("t2", 5.25, date=20),
                "t3": _transaction("t3", 99, direction="income", date=20),
                "t4": _transaction("t4", 7, date=40),
            }
        }
    )
    assert ledger.spending_by_category(finance) == {"food": 22.25}
    assert ledger.spending_by_category(finance, start=15, end=40) == {"food": 5.25}
    assert [txn.id for txn in ledger.transactions_for_wallet(finance, "w1")][0] == "t4"


def test_default_finance_categories_come_from_yaml():
    finance = default_finance_data()
    assert {"food", "housing", "education", "shopping", "transport", "health"} <= set(finance.categories)
    assert all(category.is_custom is False for category in finance.categories.values())


def test_search_matches_title_content_and_blocks():
    pages = {
        "p1": _page("p1", title="Groceries", updated_at=1),
        "p2": Page(id="p2", title="Ideas", content="buy more plants", created_at=1, updated_at=3),
        "p3": Page(id="p3", title="Journal", blocks=[Block(id="b", kind="text", content="Bought groceries", order=0)], created_at=1, updated_at=2),
    }
    assert search.search_pages(pages, "groceries") == ["p3", "p1"]
    assert search.search_pages(pages, "BUY") == ["p2"]
    assert search.search_pages(pages, "   ") == []


def test_page_tree_keeps_ancestors_of_matches():
    pages, roots = _forest()
    pages["c"].title = "Needle"
    full = search.page_tree(pages, roots)
    assert [node["id"] for node in full] == ["a", "d"]
    filtered = search.page_tree(pages, roots, "needle")
    assert [node["id"] for node in filtered] == ["a"]
    assert filtered[0]["children"][0]["children"][0]["id"] == "c"


def test_task_views():
    tasks = {
        "1": DailyTask(id="1", title="Low", priority="low", time_allocation=10, created_at=1, updated_at=1),
        "2": DailyTask(id="2", title="High", priority="high", time_allocation=20, created_at=2, updated_at=2),
        "3": DailyTask(id="3", title="Done", priority="high", completed=True, streak=1, time_allocation=30, created_at=3, updated_at=3),
    }
    assert [task.id for task in search.tasks_by_priority(tasks)] == ["2", "1", "3"]
    assert [task.id for task in search.tasks_by_priority(tasks, "high")] == ["2", "3"]
    summary = search.task_summary(tasks)
    assert summary["completed"] == 1
    assert summary["minutes_planned"] == 60
    assert summary["minutes_completed"] == 30
