"""
Per-participant progress endpoints shared by tasks and challenges.
"""

from __future__ import annotations

import datetime as dt
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from habitledger.api.deps import Services, get_current_user_id, get_services
from habitledger.api.serializers import penalty_out, snapshot_out, stats_out

router = APIRouter(prefix="/v1/obligations")


class CompletionRequest(BaseModel):
    date: dt.date


@router.post("/{obligation_id}/complete")
def mark_complete(
    obligation_id: str,
    req: CompletionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    snapshot = services.registry.mark_complete(obligation_id, user_id, req.date)
    return snapshot_out(snapshot)


@router.post("/{obligation_id}/uncomplete")
def mark_incomplete(
    obligation_id: str,
    req: CompletionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    snapshot = services.registry.mark_incomplete(obligation_id, user_id, req.date)
    return snapshot_out(snapshot)


@router.get("/{obligation_id}/stats")
def get_stats(
    obligation_id: str,
    as_of: Optional[date] = Query(None),
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    return stats_out(services.registry.stats(obligation_id, user_id, as_of))


@router.get("/{obligation_id}/calendar")
def get_calendar(
    obligation_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    days = services.registry.completed_days(obligation_id, user_id)
    return {"obligation_id": obligation_id, "completed_days": [d.isoformat() for d in days]}


@router.post("/{obligation_id}/penalty", status_code=201)
def apply_penalty(
    obligation_id: str,
    req: CompletionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Charge the caller's configured penalty for the period containing `date`."""
    records = services.penalties.apply_penalty(obligation_id, user_id, req.date)
    return {"penalties": [penalty_out(r) for r in records]}
