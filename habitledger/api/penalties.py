from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from habitledger.api.deps import Services, get_current_user_id, get_services
from habitledger.api.serializers import balances_out, penalty_out, settlement_out
from habitledger.core.config import settings
from habitledger.core.errors import ConflictError

router = APIRouter(prefix="/v1/penalties")


class SettleRequest(BaseModel):
    creditor_id: str = Field(..., min_length=1)


class SweepRequest(BaseModel):
    as_of: Optional[date] = None


@router.get("")
def list_penalties(
    include_settled: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    records = services.penalties.list_penalties(user_id, include_settled=include_settled)
    return {"penalties": [penalty_out(r) for r in records]}


@router.get("/balances")
def get_balances(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    return balances_out(services.penalties.net_balances(user_id))


@router.post("/settle")
def settle(
    req: SettleRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Caller pays everything they net-owe `creditor_id`."""
    amount = services.penalties.settle(user_id, req.creditor_id)
    return {
        "debtor_id": user_id,
        "creditor_id": req.creditor_id,
        "amount_settled": str(amount),
        "balances": balances_out(services.penalties.net_balances(user_id)),
    }


@router.get("/settlements")
def list_settlements(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    return {"settlements": [settlement_out(s) for s in services.penalties.settlements(user_id)]}


@router.post("/sweep")
def run_sweep(
    req: SweepRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    if not settings.PENALTY_SWEEP_ENABLED:
        raise ConflictError("Penalty sweep is disabled", code="sweep_disabled")
    report = services.sweep.run(req.as_of)
    return {
        "as_of": report.as_of.isoformat(),
        "accrued": [penalty_out(r) for r in report.accrued],
        "duplicates": report.duplicates,
        "skipped_obligations": report.skipped_obligations,
        "status_changes": report.status_changes,
    }
