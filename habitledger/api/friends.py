from fastapi import APIRouter, Depends

from habitledger.api.deps import Services, get_current_user_id, get_services

router = APIRouter(prefix="/v1/friends")


@router.get("")
def list_friends(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Friends who can be invited to challenges or named as penalty recipients."""
    return {"user_id": user_id, "friends": services.friends.list_friends(user_id)}
