from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

from .deps import controller_for, persistence_failed, serialize, workspace_errors

router = APIRouter(prefix="/health-data", tags=["health-data"])


@router.get("")
async def health_data(request: Request) -> Dict[str, Any]:
    return {"health": serialize(controller_for(request).state.health_data)}


@router.patch("")
async def update_health(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        saved = await controller.update_health_data(
            protocols=body.get("protocols"),
            quit_habits=body.get("quit_habits"),
            settings=body.get("settings"),
        )
    if not saved:
        persistence_failed(controller, "Failed to save health data")
    return {"health": serialize(controller.state.health_data)}


@router.post("/protocols")
async def add_protocol(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    if not body.get("title"):
        raise HTTPException(status_code=400, detail="title required")
    with workspace_errors():
        protocol_id = await controller.add_protocol(
            body["title"],
            content=body.get("content") or "",
            description=body.get("description") or "",
            category=body.get("category") or "other",
        )
    if protocol_id is None:
        persistence_failed(controller, "Failed to add protocol")
    return {"protocol": serialize(controller.state.health_data.protocols[protocol_id])}


@router.post("/protocols/{protocol_id}/complete")
async def complete_protocol(request: Request, protocol_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        saved = await controller.set_protocol_completed(protocol_id, bool(body.get("completed", True)))
    if not saved:
        persistence_failed(controller, "Failed to update protocol")
    return {"protocol": serialize(controller.state.health_data.protocols[protocol_id])}


@router.delete("/protocols/{protocol_id}")
async def delete_protocol(request: Request, protocol_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        deleted = await controller.delete_protocol(protocol_id)
    if not deleted:
        persistence_failed(controller, "Failed to delete protocol")
    return {"deleted": protocol_id}


@router.post("/quit-habits")
async def add_quit_habit(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    if not body.get("name"):
        raise HTTPException(status_code=400, detail="name required")
    with workspace_errors():
        habit_id = await controller.add_quit_habit(
            body["name"],
            quit_date=body.get("quit_date"),
            category=body.get("category") or "other",
            description=body.get("description"),
            custom_category=body.get("custom_category"),
        )
    if habit_id is None:
        persistence_failed(controller, "Failed to add quit habit")
    return {"quit_habit": serialize(controller.state.health_data.quit_habits[habit_id])}


@router.get("/quit-habits/{habit_id}/progress")
async def quit_habit_progress(request: Request, habit_id: str) -> Dict[str, Any]:
    with workspace_errors():
        progress = controller_for(request).quit_habit_progress(habit_id)
    return serialize(progress)


@router.delete("/quit-habits/{habit_id}")
async def delete_quit_habit(request: Request, habit_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        deleted = await controller.delete_quit_habit(habit_id)
    if not deleted:
        persistence_failed(controller, "Failed to delete quit habit")
    return {"deleted": habit_id}
