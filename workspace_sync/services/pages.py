import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..errors import NotAuthenticatedError, StoreError
from ..schemas.pages import Block, Page
from ..utils.timestamps import from_iso, now_iso
from .base import StoreBackedService

logger = logging.getLogger(__name__)

_COLUMN_FOR_FIELD = {
    "title": "title",
    "content": "content",
    "icon": "icon",
    "blocks": "blocks",
    "parent_id": "parent_id",
    "children": "children",
    "is_expanded": "is_expanded",
}


def _dump_blocks(blocks: List[Any]) -> List[Dict[str, Any]]:
    return [
        block.model_dump(by_alias=True) if isinstance(block, Block) else Block.model_validate(block).model_dump(by_alias=True)
        for block in blocks
    ]


def page_from_row(row: Dict[str, Any]) -> Page:
    created_at = from_iso(row.get("created_at"))
    return Page(
        id=row["id"],
        title=row.get("title") or "Untitled",
        content=row.get("content") or "",
        blocks=[Block.model_validate(block) for block in row.get("blocks") or []],
        parent_id=row.get("parent_id"),
        children=list(row.get("children") or []),
        created_at=created_at,
        updated_at=from_iso(row.get("updated_at"), default=created_at),
        is_expanded=bool(row.get("is_expanded")),
        icon=row.get("icon") or "document",
    )


def page_to_row(page: Page, user_id: str) -> Dict[str, Any]:
    return {
        "id": page.id,
        "user_id": user_id,
        "title": page.title,
        "content": page.content,
        "blocks": _dump_blocks(page.blocks),
        "icon": page.icon,
        "parent_id": page.parent_id,
        "children": list(page.children),
        "is_expanded": page.is_expanded,
    }


class PagesService(StoreBackedService):
    table = "pages"

    async def get_all(self) -> List[Page]:
        try:
            rows = await self._store.select(self.table, match=self._owned(), order="created_at")
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("select", error)
            return []
        pages: List[Page] = []
        for row in rows:
            try:
                pages.append(page_from_row(row))
            except (KeyError, ValidationError) as error:
                logger.warning("Skipping unreadable page row %s: %s", row.get("id"), error)
        logger.info("Fetched %d pages", len(pages))
        return pages

    async def create(self, page: Page) -> Optional[Page]:
        try:
            row = await self._store.insert(self.table, page_to_row(page, self._user_id()))
            return page_from_row(row)
        except (StoreError, NotAuthenticatedError, ValidationError) as error:
            self._log_failure("insert", error)
            return None

    async def update(self, page_id: str, **fields: Any) -> bool:
        values: Dict[str, Any] = {}
        for field, value in fields.items():
            column = _COLUMN_FOR_FIELD.get(field)
            if column is None:
                raise ValueError(f"Unknown page field {field!r}")
            values[column] = _dump_blocks(value) if field == "blocks" else value
        values["updated_at"] = now_iso()
        try:
            rows = await self._store.update(self.table, values, match=self._owned(id=page_id))
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("update", error)
            return False
        if not rows:
            logger.error("Update on pages matched no row for %s", page_id)
            return False
        return True

    async def delete(self, page_id: str) -> bool:
        try:
            await self._store.delete(self.table, match=self._owned(id=page_id))
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("delete", error)
            return False
        return True
