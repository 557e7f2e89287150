from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request

from .deps import controller_for, persistence_failed, serialize, workspace_errors

router = APIRouter(tags=["tasks"])

_TASK_FIELDS = ("title", "description", "time_allocation", "priority", "category")
_EVENT_FIELDS = ("title", "event_date", "event_time", "description", "is_all_day", "category")


def _task_payload(request: Request, task_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    task = controller.state.daily_tasks.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return {"task": serialize(task), "error": controller.error}


@router.get("/tasks")
async def list_tasks(request: Request, priority: Optional[str] = None) -> Dict[str, Any]:
    return {"tasks": serialize(controller_for(request).tasks_by_priority(priority))}


@router.get("/tasks/summary")
async def summarize_tasks(request: Request) -> Dict[str, Any]:
    return controller_for(request).task_summary()


@router.post("/tasks")
async def create_task(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    if not body.get("title"):
        raise HTTPException(status_code=400, detail="title required")
    with workspace_errors():
        task_id = controller.create_task(**{key: body[key] for key in _TASK_FIELDS if key in body})
    await controller.drain()
    if task_id not in controller.state.daily_tasks:
        persistence_failed(controller, "Failed to create task")
    return _task_payload(request, task_id)


@router.patch("/tasks/{task_id}")
async def update_task(request: Request, task_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        controller.update_task(task_id, **body)
    await controller.drain()
    return _task_payload(request, task_id)


@router.post("/tasks/{task_id}/toggle")
async def toggle_task(request: Request, task_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        controller.toggle_task_completion(task_id)
    await controller.drain()
    return _task_payload(request, task_id)


@router.delete("/tasks/{task_id}")
async def delete_task(request: Request, task_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        deleted = await controller.delete_task(task_id)
    if not deleted:
        persistence_failed(controller, "Failed to delete task")
    return {"deleted": task_id}


@router.get("/events")
async def list_events(request: Request, date: Optional[str] = None) -> Dict[str, Any]:
    controller = controller_for(request)
    if date:
        events = controller.events_on(date)
    else:
        events = sorted(controller.state.calendar_events.values(), key=lambda event: (event.event_date, event.event_time or ""))
    return {"events": serialize(events)}


@router.post("/events")
async def create_event(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    if not body.get("title") or not body.get("event_date"):
        raise HTTPException(status_code=400, detail="title and event_date required")
    with workspace_errors():
        event_id = controller.create_event(**{key: body[key] for key in _EVENT_FIELDS if key in body})
    await controller.drain()
    event = controller.state.calendar_events.get(event_id)
    if event is None:
        persistence_failed(controller, "Failed to create event")
    return {"event": serialize(event)}


@router.patch("/events/{event_id}")
async def update_event(request: Request, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        controller.update_event(event_id, **body)
    await controller.drain()
    return {"event": serialize(controller.state.calendar_events.get(event_id)), "error": controller.error}


@router.delete("/events/{event_id}")
async def delete_event(request: Request, event_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        deleted = await controller.delete_event(event_id)
    if not deleted:
        persistence_failed(controller, "Failed to delete event")
    return {"deleted": event_id}
