from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import get_db
from shared.security import get_current_user, limiter
from .schemas import BidCreate, BidPlaced, BidResponse
from .service import BidService

router = APIRouter(prefix="/products/{product_id}/bids", tags=["Bidding"])


@router.post("", response_model=BidPlaced, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.BID_RATE_LIMIT)
async def place_bid(
    request: Request,                        # slowapi needs this to key the limit
    product_id: int,
    payload: BidCreate,
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    bid = await BidService.place_bid(db, product_id, user_id, payload.bid_amount)
    return BidPlaced(bid=BidResponse.model_validate(bid))


@router.get("", response_model=list[BidResponse])
async def list_bids(product_id: int, db: AsyncSession = Depends(get_db)):
    return await BidService.list_bids(db, product_id)
