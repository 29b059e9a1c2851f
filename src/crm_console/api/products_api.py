"""
Products API - FastAPI router for the product catalog.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..services.base import parse_bool_param
from .deps import service_error
from .state import Services, get_services

router = APIRouter(prefix="/api/crm/products", tags=["products"])


class ProductCreate(BaseModel):
    """Request model for creating a product."""
    name: str
    sku: Optional[str] = None
    description: Optional[str] = None
    type: str = "product"
    base_price: float = 0.0
    currency: Optional[str] = None
    cost: Optional[float] = None
    tax_rate: Optional[float] = None
    is_active: bool = True
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict = Field(default_factory=dict)


class ProductUpdate(BaseModel):
    """Request model for updating a product."""
    name: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    base_price: Optional[float] = None
    currency: Optional[str] = None
    cost: Optional[float] = None
    tax_rate: Optional[float] = None
    is_active: Optional[bool] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    metadata: Optional[dict] = None


class ProductResponse(BaseModel):
    """Response model for a product, with derived margin fields."""
    id: str
    name: str
    sku: Optional[str]
    description: Optional[str]
    type: str
    base_price: float
    currency: str
    cost: Optional[float]
    tax_rate: Optional[float]
    is_active: bool
    category: Optional[str]
    tags: list[str]
    metadata: dict
    margin: Optional[float]
    margin_percent: Optional[float]
    margin_bucket: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


@router.get("", response_model=list[ProductResponse])
async def list_products(
    q: Optional[str] = None,
    type: Optional[str] = None,
    category: Optional[str] = None,
    is_active: Optional[str] = None,
    sort: Optional[str] = None,
    dir: Optional[str] = None,
    services: Services = Depends(get_services),
):
    """List catalog products."""
    products = services.catalog.list_products(
        q=q, type=type, category=category, is_active=parse_bool_param(is_active),
        sort=sort, direction=dir,
    )
    return [ProductResponse(**p.to_view()) for p in products]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str, services: Services = Depends(get_services)):
    try:
        return ProductResponse(**services.catalog.get_product(product_id).to_view())
    except ValueError as e:
        raise service_error(e)


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(product_data: ProductCreate, services: Services = Depends(get_services)):
    """Create a new product."""
    try:
        product = services.catalog.create_product(product_data.model_dump())
        return ProductResponse(**product.to_view())
    except ValueError as e:
        raise service_error(e)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(product_id: str, updates: ProductUpdate, services: Services = Depends(get_services)):
    """Update an existing product. Only fields sent in the body change."""
    try:
        product = services.catalog.update_product(product_id, updates.model_dump(exclude_unset=True))
        return ProductResponse(**product.to_view())
    except ValueError as e:
        raise service_error(e)


@router.delete("/{product_id}")
async def delete_product(product_id: str, services: Services = Depends(get_services)):
    try:
        services.catalog.delete_product(product_id)
        return {"success": True, "message": f"Product '{product_id}' deleted"}
    except ValueError as e:
        raise service_error(e)
