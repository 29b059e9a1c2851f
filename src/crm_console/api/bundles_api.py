"""
Bundles API - FastAPI router for product bundles.
"""
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..services.base import parse_bool_param
from .deps import service_error
from .state import Services, get_services

router = APIRouter(prefix="/api/crm/products/bundles", tags=["bundles"])


class BundleItemModel(BaseModel):
    product_id: str
    quantity: int = 1
    price_override: Optional[float] = None


class BundleCreate(BaseModel):
    """Request model for creating a bundle."""
    name: str
    sku: Optional[str] = None
    description: Optional[str] = None
    items: list[BundleItemModel] = Field(default_factory=list)
    bundle_price: float = 0.0
    currency: Optional[str] = None
    is_active: bool = True
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class BundleUpdate(BaseModel):
    """Request model for updating a bundle."""
    name: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    items: Optional[list[BundleItemModel]] = None
    bundle_price: Optional[float] = None
    currency: Optional[str] = None
    is_active: Optional[bool] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None


class BundleResponse(BaseModel):
    id: str
    name: str
    sku: Optional[str]
    description: Optional[str]
    items: list[BundleItemModel]
    bundle_price: float
    currency: str
    is_active: bool
    category: Optional[str]
    tags: list[str]
    created_at: Optional[str]
    updated_at: Optional[str]


class BreakdownResponse(BaseModel):
    """Component value, savings and margin for a bundle."""
    bundle_id: str
    list_value: float
    component_cost: float
    bundle_price: float
    savings: float
    savings_percent: float
    margin: float
    margin_percent: float
    warnings: list[str]


@router.get("", response_model=list[BundleResponse])
async def list_bundles(
    q: Optional[str] = None,
    is_active: Optional[str] = None,
    sort: Optional[str] = None,
    dir: Optional[str] = None,
    services: Services = Depends(get_services),
):
    bundles = services.bundles.list_bundles(
        q=q, is_active=parse_bool_param(is_active), sort=sort, direction=dir,
    )
    return [BundleResponse(**b.to_record()) for b in bundles]


@router.get("/{bundle_id}", response_model=BundleResponse)
async def get_bundle(bundle_id: str, services: Services = Depends(get_services)):
    try:
        return BundleResponse(**services.bundles.get_bundle(bundle_id).to_record())
    except ValueError as e:
        raise service_error(e)


@router.get("/{bundle_id}/breakdown", response_model=BreakdownResponse)
async def get_bundle_breakdown(bundle_id: str, services: Services = Depends(get_services)):
    """Savings and margin of a bundle against its components."""
    try:
        bundle = services.bundles.get_bundle(bundle_id)
    except ValueError as e:
        raise service_error(e)
    return BreakdownResponse(**asdict(services.bundles.breakdown(bundle)))


@router.post("", response_model=BundleResponse, status_code=201)
async def create_bundle(bundle_data: BundleCreate, services: Services = Depends(get_services)):
    try:
        bundle = services.bundles.create_bundle(bundle_data.model_dump())
        return BundleResponse(**bundle.to_record())
    except ValueError as e:
        raise service_error(e)


@router.put("/{bundle_id}", response_model=BundleResponse)
async def update_bundle(bundle_id: str, updates: BundleUpdate, services: Services = Depends(get_services)):
    try:
        bundle = services.bundles.update_bundle(bundle_id, updates.model_dump(exclude_unset=True))
        return BundleResponse(**bundle.to_record())
    except ValueError as e:
        raise service_error(e)


@router.delete("/{bundle_id}")
async def delete_bundle(bundle_id: str, services: Services = Depends(get_services)):
    try:
        services.bundles.delete_bundle(bundle_id)
        return {"success": True, "message": f"Bundle '{bundle_id}' deleted"}
    except ValueError as e:
        raise service_error(e)
