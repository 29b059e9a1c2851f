"""
Quotes API - price a basket of products and bundles.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from ..engine import QuoteRequest, parse_date
from .state import Services, get_services

router = APIRouter(prefix="/api/crm/quotes", tags=["quotes"])


class CalcRequest(BaseModel):
    account_id: Optional[str] = None
    items: dict[str, int] = Field(default_factory=dict)
    bundles: dict[str, int] = Field(default_factory=dict)
    discount_code: Optional[str] = None
    request_date: Optional[str] = None


@router.post("/calculate")
async def calculate_quote(req: CalcRequest, services: Services = Depends(get_services)):
    """Price the request and return lines, totals, warnings and the trace."""
    if not req.items and not req.bundles:
        raise HTTPException(status_code=400, detail={"errors": ["Quote needs at least one product or bundle"]})
    bad = [k for k, qty in {**req.items, **req.bundles}.items() if qty < 1]
    if bad:
        raise HTTPException(status_code=400, detail={"errors": [f"Quantity for '{k}' must be at least 1" for k in bad]})
    if req.request_date:
        try:
            parse_date(req.request_date)
        except ValueError:
            raise HTTPException(status_code=400, detail={"errors": ["request_date must be YYYY-MM-DD format"]})

    request = QuoteRequest(
        items=req.items,
        bundles=req.bundles,
        account_id=req.account_id,
        discount_code=req.discount_code,
        request_date=req.request_date,
    )
    result = services.quotes.calculate(request)
    payload = jsonable_encoder(result)
    payload['discount_total'] = round(result.discount_total, 2)
    return payload
