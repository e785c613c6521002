from fastapi import APIRouter
from money_manager.api.v1.endpoints import accounts, categories, debts, history, payments

api_router = APIRouter()

api_router.include_router(categories.router, prefix="/categories", tags=["categories"])
api_router.include_router(accounts.router, prefix="/users", tags=["accounts"])
api_router.include_router(payments.router, prefix="/users", tags=["payments"])
api_router.include_router(debts.router, prefix="/users", tags=["debts"])
api_router.include_router(history.router, prefix="/users", tags=["history"])
