from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

BlockKind = Literal["text", "header", "image", "video", "table"]
BLOCK_KINDS = ("text", "header", "image", "video", "table")


class Block(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    kind: BlockKind = Field(alias="type")
    content: str = ""
    data: Optional[Dict[str, Any]] = None
    order: int


class Page(BaseModel):
    id: str
    title: str
    content: str = ""
    blocks: List[Block] = Field(default_factory=list)
    parent_id: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    created_at: int
    updated_at: int
    is_expanded: bool = False
    icon: str = "document"


PAGE_UPDATABLE_FIELDS = ("title", "content", "icon", "blocks", "is_expanded")
