from fastapi import APIRouter, Depends, status

from money_manager.api.deps import get_category_repo, get_settlement_service, get_user_repo
from money_manager.models.category import DEBT_CATEGORY, LOAN_CATEGORY
from money_manager.repositories.category_repo import CategoryRepository
from money_manager.repositories.user_repo import UserRepository
from money_manager.schemas.requests import EarnRequest, LoanRequest, PayRequest, SplitRequest
from money_manager.schemas.settlement import (
    BalanceResult,
    EarnCommand,
    GiveLoanCommand,
    LoanResult,
    PayCommand,
    SplitCommand,
    SplitResult,
)
from money_manager.services.settlement_service import SettlementService

router = APIRouter()

@router.get("/{username}/balance", response_model=BalanceResult)
async def get_balance(
    username: str,
    users: UserRepository = Depends(get_user_repo),
    service: SettlementService = Depends(get_settlement_service)
):
    """Current wallet balance"""
    return await service.check_balance(await users.resolve_user_id(username))

@router.post("/{username}/pay", response_model=BalanceResult)
async def pay(
    username: str,
    payload: PayRequest,
    users: UserRepository = Depends(get_user_repo),
    categories: CategoryRepository = Depends(get_category_repo),
    service: SettlementService = Depends(get_settlement_service)
):
    """Record an expense paid from the wallet"""
    category = await categories.resolve(payload.category)
    return await service.pay(PayCommand(
        user_id=await users.resolve_user_id(username),
        amount=payload.amount,
        category_id=category.id,
        description=payload.description
    ))

@router.post("/{username}/earn", response_model=BalanceResult)
async def earn(
    username: str,
    payload: EarnRequest,
    users: UserRepository = Depends(get_user_repo),
    categories: CategoryRepository = Depends(get_category_repo),
    service: SettlementService = Depends(get_settlement_service)
):
    """Record an income into the wallet"""
    category = await categories.resolve(payload.category)
    return await service.earn(EarnCommand(
        user_id=await users.resolve_user_id(username),
        amount=payload.amount,
        category_id=category.id,
        description=payload.description
    ))

@router.post("/{username}/loans", response_model=LoanResult, status_code=status.HTTP_201_CREATED)
async def give_loan(
    username: str,
    payload: LoanRequest,
    users: UserRepository = Depends(get_user_repo),
    categories: CategoryRepository = Depends(get_category_repo),
    service: SettlementService = Depends(get_settlement_service)
):
    """Lend money to another user"""
    loan = await categories.resolve(LOAN_CATEGORY)
    debt = await categories.resolve(DEBT_CATEGORY)
    return await service.give_loan(GiveLoanCommand(
        creditor_id=await users.resolve_user_id(username),
        debtor_id=await users.resolve_user_id(payload.debtor),
        amount=payload.amount,
        loan_category_id=loan.id,
        debt_category_id=debt.id,
        description=payload.description
    ))

@router.post("/{username}/splits", response_model=SplitResult, status_code=status.HTTP_201_CREATED)
async def split(
    username: str,
    payload: SplitRequest,
    users: UserRepository = Depends(get_user_repo),
    categories: CategoryRepository = Depends(get_category_repo),
    service: SettlementService = Depends(get_settlement_service)
):
    """Pay a shared expense in full; the other user owes half"""
    expense = await categories.resolve(payload.category)
    loan = await categories.resolve(LOAN_CATEGORY)
    return await service.split(SplitCommand(
        creditor_id=await users.resolve_user_id(username),
        debtor_id=await users.resolve_user_id(payload.debtor),
        amount=payload.amount,
        expense_category_id=expense.id,
        loan_category_id=loan.id,
        description=payload.description
    ))
