from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.models.schemas import StatsResponse
from app.services.stats import get_database_stats

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=StatsResponse)
async def stats(session: AsyncSession = Depends(get_session)):
    return await get_database_stats(session)
