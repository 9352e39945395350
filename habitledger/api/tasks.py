from __future__ import annotations

from fastapi import APIRouter, Depends

from habitledger.api.deps import Services, get_current_user_id, get_services
from habitledger.api.serializers import obligation_out
from habitledger.core.errors import NotAParticipantError, NotFoundError
from habitledger.models.obligation import CreateTaskRequest, Task

router = APIRouter()


@router.post("/v1/tasks", status_code=201)
def create_task(
    req: CreateTaskRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    task = services.registry.create_task(user_id, req)
    return obligation_out(task, services.clock.today())


@router.get("/v1/tasks")
def list_tasks(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    tasks = [o for o in services.registry.list_for_user(user_id) if isinstance(o, Task)]
    today = services.clock.today()
    return {"tasks": [obligation_out(t, today) for t in tasks]}


@router.get("/v1/tasks/{task_id}")
def get_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    task = services.registry.get(task_id)
    if not isinstance(task, Task):
        raise NotFoundError(f"Task not found: {task_id}")
    if task.owner_id != user_id:
        raise NotAParticipantError(f"{user_id} does not own {task_id}")
    return obligation_out(task, services.clock.today())
