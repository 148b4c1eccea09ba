from fastapi import APIRouter, Depends

from expense_api.deps import get_rates
from expense_api.models.rates import RatesResponse
from expense_api.services.rates import DEFAULT_BASE, RatesService

router = APIRouter(prefix="/rates", tags=["rates"])


@router.get("/latest", response_model=RatesResponse)
@router.get("/latest/{base}", response_model=RatesResponse)
async def latest_rates(base: str = DEFAULT_BASE, rates: RatesService = Depends(get_rates)):
    return await rates.get_rates(base)
