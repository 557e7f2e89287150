"""
Page tree helpers.

Pages form a forest: ``parent_id`` on the child and the parent's ``children`` list must
agree, and ``root_pages`` lists exactly the pages without a parent. The helpers below
mutate the ``pages`` dict and ``root_pages`` list they are given in place; callers that
need to roll back take copies first.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from ..errors import DocumentTreeError
from ..schemas.pages import Page

logger = logging.getLogger(__name__)


def attach(pages: Dict[str, Page], root_pages: List[str], page_id: str, parent_id: Optional[str], updated_at: Optional[int] = None) -> None:
    page = pages[page_id]
    if parent_id is None:
        page.parent_id = None
        if page_id not in root_pages:
            root_pages.append(page_id)
        return
    parent = pages.get(parent_id)
    if parent is None:
        raise DocumentTreeError(f"Parent page {parent_id} not found")
    page.parent_id = parent_id
    if page_id not in parent.children:
        parent.children = [*parent.children, page_id]
    if updated_at is not None:
        parent.updated_at = updated_at


def detach(pages: Dict[str, Page], root_pages: List[str], page_id: str, updated_at: Optional[int] = None) -> None:
    page = pages.get(page_id)
    parent_id = page.parent_id if page else None
    if parent_id and parent_id in pages:
        parent = pages[parent_id]
        parent.children = [child for child in parent.children if child != page_id]
        if updated_at is not None:
            parent.updated_at = updated_at
    if page_id in root_pages:
        root_pages.remove(page_id)


def collect_subtree(pages: Dict[str, Page], page_id: str) -> List[str]:
    """Return ``page_id`` and all its descendants, deepest first."""
    ordered: List[str] = []
    seen: Set[str] = set()

    def _visit(current: str) -> None:
        if current in seen or current not in pages:
            return
        seen.add(current)
        for child in pages[current].children:
            _visit(child)
        ordered.append(current)

    _visit(page_id)
    return ordered


def is_descendant(pages: Dict[str, Page], candidate: str, ancestor: str) -> bool:
    current = pages.get(candidate)
    seen: Set[str] = set()
    while current is not None and current.parent_id is not None:
        if current.parent_id == ancestor:
            return True
        if current.parent_id in seen:
            break
        seen.add(current.parent_id)
        current = pages.get(current.parent_id)
    return False


def check_move(pages: Dict[str, Page], page_id: str, new_parent_id: Optional[str]) -> None:
    if page_id not in pages:
        raise DocumentTreeError(f"Page {page_id} not found")
    if new_parent_id is None:
        return
    if new_parent_id not in pages:
        raise DocumentTreeError(f"Parent page {new_parent_id} not found")
    if new_parent_id == page_id or is_descendant(pages, new_parent_id, page_id):
        raise DocumentTreeError("A page cannot be moved under itself or one of its descendants")


def remove_subtree(pages: Dict[str, Page], root_pages: List[str], page_id: str, updated_at: Optional[int] = None) -> List[str]:
    removed = collect_subtree(pages, page_id)
    detach(pages, root_pages, page_id, updated_at)
    for removed_id in removed:
        pages.pop(removed_id, None)
        if removed_id in root_pages:
            root_pages.remove(removed_id)
    return removed


def normalize_tree(loaded: List[Page]) -> Tuple[Dict[str, Page], List[str]]:
    """Build a consistent forest from rows as they came back from the store.

    ``parent_id`` is treated as the source of truth. Child ids that point at missing pages
    or disagree with the child's ``parent_id`` are dropped, children missing from their
    parent's list are appended, and pages whose parent is missing (or that sit on a cycle)
    become roots.
    """
    pages: Dict[str, Page] = {page.id: page for page in loaded}
    repaired = 0

    for page in pages.values():
        if page.parent_id is not None and page.parent_id not in pages:
            page.parent_id = None
            repaired += 1

    for page in pages.values():
        if page.parent_id is not None and is_descendant(pages, page.parent_id, page.id):
            page.parent_id = None
            repaired += 1

    for page in pages.values():
        valid = [child for child in page.children if child in pages and pages[child].parent_id == page.id]
        deduped = list(dict.fromkeys(valid))
        if deduped != page.children:
            repaired += 1
        page.children = deduped

    for page in loaded:
        if page.parent_id is not None:
            parent = pages[page.parent_id]
            if page.id not in parent.children:
                parent.children.append(page.id)
                repaired += 1

    root_pages = [page.id for page in loaded if page.parent_id is None]
    if repaired:
        logger.warning("Repaired %d inconsistent page links while loading", repaired)
    return pages, root_pages


def find_violations(pages: Dict[str, Page], root_pages: List[str]) -> List[str]:
    problems: List[str] = []
    for page in pages.values():
        if page.parent_id is not None:
            parent = pages.get(page.parent_id)
            if parent is None:
                problems.append(f"{page.id}: parent {page.parent_id} missing")
            elif page.id not in parent.children:
                problems.append(f"{page.id}: not listed in parent {page.parent_id}")
            if is_descendant(pages, page.parent_id, page.id):
                problems.append(f"{page.id}: cycle")
        for child in page.children:
            if child not in pages:
                problems.append(f"{page.id}: child {child} missing")
            elif pages[child].parent_id != page.id:
                problems.append(f"{page.id}: child {child} points elsewhere")
    roots = {page.id for page in pages.values() if page.parent_id is None}
    if roots != set(root_pages) or len(root_pages) != len(set(root_pages)):
        problems.append("root_pages does not match pages without a parent")
    return problems
