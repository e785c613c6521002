from fastapi import APIRouter, Depends, status

from money_manager.api.deps import get_settlement_service
from money_manager.schemas.requests import AccountRequest, AccountResponse
from money_manager.services.settlement_service import SettlementService

router = APIRouter()

@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def open_account(
    payload: AccountRequest,
    service: SettlementService = Depends(get_settlement_service)
):
    """Register a username together with its empty wallet"""
    user = await service.open_account(payload.username)
    return AccountResponse(user_id=user.id, username=user.username, balance=0)
