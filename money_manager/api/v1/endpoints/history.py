from typing import List

from fastapi import APIRouter, Depends

from money_manager.api.deps import get_history_repo, get_user_repo
from money_manager.models.history import CategoryShare, HistoryRow
from money_manager.repositories.history_repo import HistoryRepository
from money_manager.repositories.user_repo import UserRepository
from money_manager.schemas.requests import StatisticsKind

router = APIRouter()

@router.get("/{username}/history", response_model=List[HistoryRow])
async def get_history(
    username: str,
    users: UserRepository = Depends(get_user_repo),
    history: HistoryRepository = Depends(get_history_repo)
):
    """Every balance-affecting event, oldest first"""
    user_id = await users.resolve_user_id(username)
    return [row async for row in history.find_history(user_id)]

@router.get("/{username}/statistics", response_model=List[CategoryShare])
async def get_statistics(
    username: str,
    kind: StatisticsKind = "expense",
    users: UserRepository = Depends(get_user_repo),
    history: HistoryRepository = Depends(get_history_repo)
):
    """Share of expenses or incomes per category"""
    user_id = await users.resolve_user_id(username)
    return await history.find_statistics(user_id, is_expense=(kind == "expense"))
