from typing import List

from fastapi import APIRouter, Depends

from money_manager.api.deps import get_category_repo
from money_manager.models.category import Category
from money_manager.repositories.category_repo import CategoryRepository

router = APIRouter()

@router.get("", response_model=List[Category])
async def list_categories(categories: CategoryRepository = Depends(get_category_repo)):
    """All expense and income categories."""
    return await categories.find_all()
