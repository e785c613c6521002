from typing import List

from fastapi import APIRouter, Depends

from money_manager.api.deps import get_category_repo, get_settlement_service, get_user_repo
from money_manager.models.category import REPAY_CATEGORY
from money_manager.models.debt import DebtView
from money_manager.repositories.category_repo import CategoryRepository
from money_manager.repositories.user_repo import UserRepository
from money_manager.schemas.requests import DebtResponse, DebtsResponse, RepayRequest
from money_manager.schemas.settlement import (
    AcceptPaymentCommand,
    DeclinePaymentCommand,
    DeclineResult,
    DebtsOverview,
    RepayRequestResult,
    RequestRepayCommand,
    SettlementResult,
)
from money_manager.services.settlement_service import SettlementService

router = APIRouter()


async def _to_response(
    overview: DebtsOverview, users: UserRepository, as_creditor: bool
) -> DebtsResponse:
    debts: List[DebtView] = overview.active + overview.pending
    names = await users.resolve_usernames(
        debt.debtor_id if as_creditor else debt.creditor_id for debt in debts
    )

    def convert(debt: DebtView) -> DebtResponse:
        counterpart = debt.debtor_id if as_creditor else debt.creditor_id
        return DebtResponse(
            status_id=debt.status_id,
            counterpart=names.get(counterpart, str(counterpart)),
            amount=debt.amount,
            status=debt.status,
            pending_amount=debt.status_amount if debt.is_pending else 0,
            description=debt.description
        )

    return DebtsResponse(
        active=[convert(debt) for debt in overview.active],
        pending=[convert(debt) for debt in overview.pending],
        balance=overview.balance
    )


@router.get("/{username}/debts", response_model=DebtsResponse)
async def get_debts(
    username: str,
    users: UserRepository = Depends(get_user_repo),
    service: SettlementService = Depends(get_settlement_service)
):
    """Debts the user owes, active and awaiting confirmation"""
    overview = await service.debts_overview(await users.resolve_user_id(username))
    return await _to_response(overview, users, as_creditor=False)


@router.get("/{username}/loans", response_model=DebtsResponse)
async def get_loans(
    username: str,
    users: UserRepository = Depends(get_user_repo),
    service: SettlementService = Depends(get_settlement_service)
):
    """Loans the user gave, active and with repay requests"""
    overview = await service.loans_overview(await users.resolve_user_id(username))
    return await _to_response(overview, users, as_creditor=True)


@router.post("/{username}/debts/{status_id}/repay", response_model=RepayRequestResult)
async def request_repay(
    username: str,
    status_id: int,
    payload: RepayRequest,
    users: UserRepository = Depends(get_user_repo),
    service: SettlementService = Depends(get_settlement_service)
):
    """Offer to repay a debt (debtor only)"""
    return await service.request_repay(RequestRepayCommand(
        status_id=status_id,
        amount=payload.amount,
        debtor_id=await users.resolve_user_id(username)
    ))


@router.post("/{username}/loans/{status_id}/accept", response_model=SettlementResult)
async def accept_payment(
    username: str,
    status_id: int,
    users: UserRepository = Depends(get_user_repo),
    categories: CategoryRepository = Depends(get_category_repo),
    service: SettlementService = Depends(get_settlement_service)
):
    """Accept a pending repay (creditor only)"""
    repay = await categories.resolve(REPAY_CATEGORY)
    return await service.accept_payment(AcceptPaymentCommand(
        status_id=status_id,
        repay_category_id=repay.id,
        creditor_id=await users.resolve_user_id(username)
    ))


@router.post("/{username}/loans/{status_id}/decline", response_model=DeclineResult)
async def decline_payment(
    username: str,
    status_id: int,
    users: UserRepository = Depends(get_user_repo),
    service: SettlementService = Depends(get_settlement_service)
):
    """Decline a pending repay (creditor only)"""
    return await service.decline_payment(DeclinePaymentCommand(
        status_id=status_id,
        creditor_id=await users.resolve_user_id(username)
    ))
