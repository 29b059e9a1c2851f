"""
Discounts API - FastAPI router for discount management.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..engine.models import Discount
from ..services.base import parse_bool_param
from .deps import service_error
from .state import Services, get_services

router = APIRouter(prefix="/api/crm/products/discounts", tags=["discounts"])


class TierModel(BaseModel):
    min_amount: float
    value: float


class DiscountCreate(BaseModel):
    """Request model for creating a discount."""
    name: str
    code: Optional[str] = None
    description: Optional[str] = None
    type: str = "percentage"
    value: float = 0.0
    scope: str = "global"
    product_ids: list[str] = Field(default_factory=list)
    bundle_ids: list[str] = Field(default_factory=list)
    account_ids: list[str] = Field(default_factory=list)
    min_quantity: Optional[int] = None
    min_amount: Optional[float] = None
    max_discount: Optional[float] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_active: bool = True
    usage_limit: Optional[int] = None
    tiers: list[TierModel] = Field(default_factory=list)


class DiscountUpdate(BaseModel):
    """Request model for updating a discount."""
    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    value: Optional[float] = None
    scope: Optional[str] = None
    product_ids: Optional[list[str]] = None
    bundle_ids: Optional[list[str]] = None
    account_ids: Optional[list[str]] = None
    min_quantity: Optional[int] = None
    min_amount: Optional[float] = None
    max_discount: Optional[float] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_active: Optional[bool] = None
    usage_limit: Optional[int] = None
    tiers: Optional[list[TierModel]] = None


class DiscountResponse(BaseModel):
    id: str
    name: str
    code: Optional[str]
    description: Optional[str]
    type: str
    value: float
    scope: str
    product_ids: list[str]
    bundle_ids: list[str]
    account_ids: list[str]
    min_quantity: Optional[int]
    min_amount: Optional[float]
    max_discount: Optional[float]
    start_date: Optional[str]
    end_date: Optional[str]
    is_active: bool
    usage_limit: Optional[int]
    usage_count: int
    tiers: list[TierModel]
    created_at: Optional[str]
    updated_at: Optional[str]


class ValidationResponse(BaseModel):
    """Response model for validation."""
    valid: bool
    errors: list[str]
    warnings: list[str]


@router.get("", response_model=list[DiscountResponse])
async def list_discounts(
    q: Optional[str] = None,
    type: Optional[str] = None,
    scope: Optional[str] = None,
    is_active: Optional[str] = None,
    sort: Optional[str] = None,
    dir: Optional[str] = None,
    services: Services = Depends(get_services),
):
    discounts = services.discounts.list_discounts(
        q=q, type=type, scope=scope, is_active=parse_bool_param(is_active),
        sort=sort, direction=dir,
    )
    return [DiscountResponse(**d.to_record()) for d in discounts]


@router.post("/validate", response_model=ValidationResponse)
async def validate_discount(discount_data: DiscountCreate, services: Services = Depends(get_services)):
    """Validate a discount without saving."""
    discount = Discount(**services.discounts.normalize(discount_data.model_dump(), partial=False))
    result = services.discounts.validate_discount(discount)
    return ValidationResponse(valid=result.valid, errors=result.errors, warnings=result.warnings)


@router.get("/{discount_id}", response_model=DiscountResponse)
async def get_discount(discount_id: str, services: Services = Depends(get_services)):
    try:
        return DiscountResponse(**services.discounts.get_discount(discount_id).to_record())
    except ValueError as e:
        raise service_error(e)


@router.post("", response_model=DiscountResponse, status_code=201)
async def create_discount(discount_data: DiscountCreate, services: Services = Depends(get_services)):
    """Create a new discount."""
    try:
        discount = services.discounts.create_discount(discount_data.model_dump())
        return DiscountResponse(**discount.to_record())
    except ValueError as e:
        raise service_error(e)


@router.put("/{discount_id}", response_model=DiscountResponse)
async def update_discount(discount_id: str, updates: DiscountUpdate, services: Services = Depends(get_services)):
    try:
        discount = services.discounts.update_discount(discount_id, updates.model_dump(exclude_unset=True))
        return DiscountResponse(**discount.to_record())
    except ValueError as e:
        raise service_error(e)


@router.delete("/{discount_id}")
async def delete_discount(discount_id: str, services: Services = Depends(get_services)):
    try:
        services.discounts.delete_discount(discount_id)
        return {"success": True, "message": f"Discount '{discount_id}' deleted"}
    except ValueError as e:
        raise service_error(e)


@router.post("/{discount_id}/redeem", response_model=DiscountResponse)
async def redeem_discount(discount_id: str, services: Services = Depends(get_services)):
    """Record one use of a discount."""
    try:
        return DiscountResponse(**services.discounts.redeem(discount_id).to_record())
    except ValueError as e:
        raise service_error(e)
