from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

from .deps import auth_for, controller_for, serialize, workspace_errors

router = APIRouter(prefix="/workspace", tags=["workspace"])


@router.get("")
async def workspace_summary(request: Request) -> Dict[str, Any]:
    return serialize(controller_for(request).summary())


@router.get("/state")
async def workspace_state(request: Request) -> Dict[str, Any]:
    return serialize(controller_for(request).snapshot())


@router.post("/load")
async def load_workspace(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    user_id = body.get("user_id")
    if not user_id:
        user = auth_for(request).user
        if user is None:
            raise HTTPException(status_code=401, detail="User not authenticated")
        user_id = user.id
    loaded = await controller.load_for_user(user_id)
    return {"loaded": loaded, **serialize(controller.summary())}


@router.patch("/ui")
async def update_ui_state(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        if "current_page_id" in body:
            controller.set_current_page(body["current_page_id"])
        if "current_section" in body:
            controller.set_current_section(body["current_section"])
        if "search_query" in body:
            controller.set_search_query(body["search_query"] or "")
    state = controller.state
    return {
        "current_page_id": state.current_page_id,
        "current_section": state.current_section,
        "search_query": state.search_query,
    }


@router.delete("/error")
async def clear_error(request: Request) -> Dict[str, Any]:
    controller_for(request).clear_error()
    return {"error": None}
