from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from habitledger.api.deps import Services, get_current_user_id, get_services
from habitledger.api.serializers import obligation_out, participant_out
from habitledger.core.config import settings
from habitledger.core.errors import NotAParticipantError, PermissionError
from habitledger.features.challenges.service import visibility
from habitledger.models.obligation import CreateChallengeRequest

router = APIRouter(prefix="/v1/challenges")


class RespondRequest(BaseModel):
    accept: bool


class InviteRequest(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)


class TerminateRequest(BaseModel):
    as_of: Optional[date] = None
    threshold: Optional[float] = Field(default=None, ge=0, le=100)


@router.post("", status_code=201)
def create_challenge(
    req: CreateChallengeRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    challenge = services.registry.create_challenge(user_id, req)
    return obligation_out(challenge, services.clock.today(), visibility(challenge, user_id))


@router.get("")
def list_challenges(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Challenges grouped by how the caller sees them (invited, waiting, active...)."""
    buckets = services.challenges.list_by_visibility(user_id)
    today = services.clock.today()
    return {
        name: [obligation_out(c, today, name) for c in challenges]
        for name, challenges in buckets.items()
    }


@router.get("/{challenge_id}")
def get_challenge(
    challenge_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    challenge = services.registry.get_challenge(challenge_id)
    bucket = visibility(challenge, user_id)
    if bucket is None:
        raise NotAParticipantError(f"{user_id} is not part of {challenge_id}")
    return obligation_out(challenge, services.clock.today(), bucket)


@router.get("/{challenge_id}/participants")
def get_roster(
    challenge_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    if services.challenges.visibility(challenge_id, user_id) is None:
        raise NotAParticipantError(f"{user_id} is not part of {challenge_id}")
    return {"participants": [participant_out(p) for p in services.challenges.roster(challenge_id)]}


@router.post("/{challenge_id}/invite")
def invite(
    challenge_id: str,
    req: InviteRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    _require_creator(services, challenge_id, user_id)
    challenge = services.challenges.invite(challenge_id, req.user_ids)
    return obligation_out(challenge, services.clock.today(), visibility(challenge, user_id))


@router.post("/{challenge_id}/respond")
def respond(
    challenge_id: str,
    req: RespondRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    challenge = services.challenges.respond(challenge_id, user_id, req.accept)
    return obligation_out(challenge, services.clock.today(), visibility(challenge, user_id))


@router.post("/{challenge_id}/terminate")
def terminate(
    challenge_id: str,
    req: TerminateRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    _require_creator(services, challenge_id, user_id)
    threshold = req.threshold if req.threshold is not None else settings.CHALLENGE_PASS_THRESHOLD
    challenge = services.challenges.terminate(
        challenge_id,
        req.as_of or services.clock.today(),
        threshold,
    )
    return obligation_out(challenge, services.clock.today(), visibility(challenge, user_id))


def _require_creator(services: Services, challenge_id: str, user_id: str) -> None:
    challenge = services.registry.get_challenge(challenge_id)
    if challenge.creator_id != user_id:
        raise PermissionError("Only the challenge creator can do this")
