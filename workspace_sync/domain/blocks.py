import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema

from ..errors import BlockDataError
from ..schemas.pages import BLOCK_KINDS, Block
from ..utils.ids import block_id

SCHEMA_DIR = Path(__file__).with_name("block_schemas")


def _load_schema(name: str) -> Dict[str, Any]:
    schema_path = SCHEMA_DIR / f"{name}.schema.json"
    with schema_path.open("r", encoding="utf-8") as f:
        return json.load(f)["schema"]


_compiled_schemas = {
    "header": jsonschema.Draft7Validator(_load_schema("header")),
    "table": jsonschema.Draft7Validator(_load_schema("table")),
    "image": jsonschema.Draft7Validator(_load_schema("media")),
    "video": jsonschema.Draft7Validator(_load_schema("media")),
}


def default_block_data(kind: str) -> Optional[Dict[str, Any]]:
    if kind == "header":
        return {"level": 1}
    if kind == "table":
        return {"rows": 3, "cols": 3, "cells": {}}
    if kind in ("image", "video"):
        return {"url": None}
    return None


def validate_block_data(kind: str, data: Any) -> Dict[str, Any]:
    if kind not in BLOCK_KINDS:
        return {"valid": False, "errors": [f"unknown block kind {kind!r}"]}
    validator = _compiled_schemas.get(kind)
    if validator is None:
        if data is None or isinstance(data, dict):
            return {"valid": True}
        return {"valid": False, "errors": ["data must be an object"]}
    errors = [f"{'/'.join(map(str, err.path)) or '<data>'} {err.message}" for err in sorted(validator.iter_errors(data), key=lambda e: [str(part) for part in e.path])]
    if not errors and kind == "table":
        for key in data["cells"]:
            row, col = (int(part) for part in key.split("-"))
            if row >= data["rows"] or col >= data["cols"]:
                errors.append(f"cells/{key} is outside a {data['rows']}x{data['cols']} table")
    if not errors:
        return {"valid": True}
    return {"valid": False, "errors": errors}


def ensure_valid(kind: str, data: Any) -> None:
    result = validate_block_data(kind, data)
    if not result["valid"]:
        raise BlockDataError(kind, result["errors"])


def renumber(blocks: List[Block]) -> List[Block]:
    """Return copies of ``blocks`` with dense, unique ``order`` values 0..n-1.

    Relative order is taken from the list position, not the previous ``order`` values.
    """
    return [block.model_copy(update={"order": index}) for index, block in enumerate(blocks)]


def sort_blocks(blocks: List[Block]) -> List[Block]:
    indexed = sorted(enumerate(blocks), key=lambda pair: (pair[1].order, pair[0]))
    return [block for _, block in indexed]


def new_block(kind: str, content: str = "", data: Optional[Dict[str, Any]] = None) -> Block:
    payload = data if data is not None else default_block_data(kind)
    ensure_valid(kind, payload)
    return Block(id=block_id(), kind=kind, content=content, data=payload, order=0)


def _index_of(blocks: List[Block], target_id: str) -> int:
    for index, block in enumerate(blocks):
        if block.id == target_id:
            return index
    raise KeyError(f"Block {target_id} not found")


def insert_block(blocks: List[Block], block: Block, after_block_id: Optional[str] = None) -> List[Block]:
    ordered = sort_blocks(blocks)
    position = len(ordered) if after_block_id is None else _index_of(ordered, after_block_id) + 1
    ordered.insert(position, block)
    return renumber(ordered)


def remove_block(blocks: List[Block], target_id: str) -> List[Block]:
    ordered = sort_blocks(blocks)
    del ordered[_index_of(ordered, target_id)]
    return renumber(ordered)


def move_block(blocks: List[Block], target_id: str, new_index: int) -> List[Block]:
    ordered = sort_blocks(blocks)
    block = ordered.pop(_index_of(ordered, target_id))
    position = max(0, min(new_index, len(ordered)))
    ordered.insert(position, block)
    return renumber(ordered)


def replace_block(blocks: List[Block], target_id: str, content: Optional[str] = None, data: Optional[Dict[str, Any]] = None) -> List[Block]:
    ordered = sort_blocks(blocks)
    index = _index_of(ordered, target_id)
    current = ordered[index]
    updates: Dict[str, Any] = {}
    if content is not None:
        updates["content"] = content
    if data is not None:
        ensure_valid(current.kind, data)
        updates["data"] = data
    ordered[index] = current.model_copy(update=updates)
    return renumber(ordered)
