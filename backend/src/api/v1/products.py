"""
Product catalog API endpoints.

Storefront listings and product creation. These are thin adapters over the
catalog repository; search, filtering and pagination are not offered.
"""

from uuid import UUID

from fastapi import APIRouter, status

from src.api.deps import AppSettings, Catalog
from src.core.exceptions import ProductNotFoundError
from src.core.logging import get_logger
from src.schemas.products import ProductCreate, ProductResponse

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=list[ProductResponse],
    summary="List home page products",
    description="Newest products flagged for the home page",
)
async def list_home_products(catalog: Catalog, settings: AppSettings) -> list[ProductResponse]:
    products = await catalog.list_home_products(limit=settings.home_products_limit)
    return [ProductResponse.model_validate(product) for product in products]


@router.get(
    "/all",
    response_model=list[ProductResponse],
    summary="List all products",
)
async def list_products(catalog: Catalog) -> list[ProductResponse]:
    products = await catalog.list_products()
    return [ProductResponse.model_validate(product) for product in products]


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get product",
)
async def get_product(product_id: UUID, catalog: Catalog) -> ProductResponse:
    product = await catalog.get_product(product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return ProductResponse.model_validate(product)


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add product",
)
async def create_product(body: ProductCreate, catalog: Catalog) -> ProductResponse:
    """
    Add a product to the catalog.

    Args:
        body: Product data
        catalog: Catalog repository

    Returns:
        ProductResponse: Created product
    """
    product = await catalog.create_product(**body.model_dump())
    logger.info("Product added", product_id=str(product.id), title=product.title)
    return ProductResponse.model_validate(product)
