from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request

from .deps import controller_for, persistence_failed, serialize, workspace_errors

router = APIRouter(prefix="/documents", tags=["documents"])


def _page_payload(request: Request, page_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    page = controller.state.pages.get(page_id)
    if page is None:
        raise HTTPException(status_code=404, detail=f"Page {page_id} not found")
    return {"page": serialize(page), "error": controller.error}


@router.get("")
async def document_tree(request: Request, q: Optional[str] = None) -> Dict[str, Any]:
    controller = controller_for(request)
    return {"tree": controller.page_tree(q), "root_pages": list(controller.state.root_pages)}


@router.get("/search")
async def search_documents(request: Request, q: str = "") -> Dict[str, Any]:
    results = controller_for(request).search_pages(q)
    return {"results": [{"id": page.id, "title": page.title, "icon": page.icon} for page in results]}


@router.get("/{page_id}")
async def get_document(request: Request, page_id: str) -> Dict[str, Any]:
    return _page_payload(request, page_id)


@router.post("")
async def create_document(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        page_id = controller.create_document(body.get("title") or "Untitled", body.get("parent_id"))
    await controller.drain()
    if page_id not in controller.state.pages:
        persistence_failed(controller, "Failed to create page")
    return _page_payload(request, page_id)


@router.patch("/{page_id}")
async def update_document(request: Request, page_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        controller.update_document(page_id, **body)
    await controller.drain()
    return _page_payload(request, page_id)


@router.post("/{page_id}/move")
async def move_document(request: Request, page_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        controller.move_document(page_id, body.get("parent_id"))
    await controller.drain()
    return _page_payload(request, page_id)


@router.post("/{page_id}/toggle")
async def toggle_document(request: Request, page_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        controller.toggle_page_expansion(page_id)
    await controller.drain()
    return _page_payload(request, page_id)


@router.delete("/{page_id}")
async def delete_document(request: Request, page_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        deleted = await controller.delete_document(page_id)
    if not deleted:
        persistence_failed(controller, "Failed to delete page")
    return {"deleted": page_id, "error": controller.error}


@router.post("/{page_id}/blocks")
async def add_block(request: Request, page_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    kind = body.get("type") or body.get("kind")
    if not kind:
        raise HTTPException(status_code=400, detail="type required")
    with workspace_errors():
        block_id = controller.add_block(
            page_id,
            kind,
            after_block_id=body.get("after_block_id"),
            content=body.get("content") or "",
            data=body.get("data"),
        )
    await controller.drain()
    return {"block_id": block_id, **_page_payload(request, page_id)}


@router.patch("/{page_id}/blocks/{block_id}")
async def update_block(request: Request, page_id: str, block_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        controller.update_block(page_id, block_id, content=body.get("content"), data=body.get("data"))
    await controller.drain()
    return _page_payload(request, page_id)


@router.delete("/{page_id}/blocks/{block_id}")
async def delete_block(request: Request, page_id: str, block_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        controller.delete_block(page_id, block_id)
    await controller.drain()
    return _page_payload(request, page_id)


@router.post("/{page_id}/blocks/{block_id}/move")
async def move_block(request: Request, page_id: str, block_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    index = body.get("index")
    if not isinstance(index, int):
        raise HTTPException(status_code=400, detail="index must be an integer")
    with workspace_errors():
        controller.move_block(page_id, block_id, index)
    await controller.drain()
    return _page_payload(request, page_id)
