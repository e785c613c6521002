from fastapi import Depends

from money_manager.db.mongo import get_db
from money_manager.repositories.category_repo import CategoryRepository
from money_manager.repositories.history_repo import HistoryRepository
from money_manager.repositories.user_repo import UserRepository
from money_manager.services.settlement_service import SettlementService


def get_settlement_service(db=Depends(get_db)) -> SettlementService:
    return SettlementService(db)


def get_user_repo(db=Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_category_repo(db=Depends(get_db)) -> CategoryRepository:
    return CategoryRepository(db)


def get_history_repo(db=Depends(get_db)) -> HistoryRepository:
    return HistoryRepository(db)
