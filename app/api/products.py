from decimal import Decimal
from typing import Union
import logging

from fastapi import APIRouter, Depends, Query, status
from kombu.exceptions import OperationalError as BrokerError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.exceptions import NotFoundError
from app.repositories.product_repository import SQLAlchemyProductRepository
from app.services.product_service import ProductService, ProductPage
from app.schemas.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    PagedResponse
)
from app.schemas.response import ApiResponse
from app.tasks.inventory_tasks import check_low_stock

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/products", tags=["Products"])


def get_product_service(db: Session = Depends(get_db)) -> ProductService:
    """Build a catalog service bound to the request's database session."""
    return ProductService(
        SQLAlchemyProductRepository(db),
        logger=logging.getLogger("app.services.product_service"),
    )


def _to_response(products) -> list[ProductResponse]:
    return [ProductResponse.model_validate(p) for p in products]


def _to_paged(page: ProductPage) -> PagedResponse:
    return PagedResponse(
        content=_to_response(page.content),
        page=page.page,
        size=page.size,
        total_elements=page.total_elements,
        total_pages=page.total_pages,
        first=page.first,
        last=page.last,
        has_next=page.has_next,
        has_previous=page.has_previous,
    )


@router.get(
    "/",
    response_model=ApiResponse[Union[PagedResponse, list[ProductResponse]]],
    summary="List products",
    description="Get a sorted page of active products, or every product when `unpaged=true`."
)
def list_products(
    page: int = Query(0, ge=0, description="Page number (0-indexed)"),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Items per page"),
    sort: str = Query("id", description="Field to sort by"),
    direction: str = Query("asc", description="Sort direction: asc or desc"),
    unpaged: bool = Query(False, description="Return every product, including inactive ones, without paging"),
    service: ProductService = Depends(get_product_service)
):
    """
    List products.

    - **unpaged=true**: full listing ordered by id, soft-deleted products included
    - otherwise: one page of active products sorted by `sort` and `direction`
    """
    logger.debug(f"GET /products page={page} size={size} sort={sort} direction={direction} unpaged={unpaged}")

    if unpaged:
        products = service.get_all_products()
        return ApiResponse.ok(_to_response(products), "Products retrieved successfully")

    product_page = service.get_all_products_paged(page, size, sort, direction)
    return ApiResponse.ok(_to_paged(product_page), "Paged products retrieved successfully")


@router.post(
    "/",
    response_model=ApiResponse[ProductResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a new product",
    description="Create a new product. Names must be unique among active products."
)
def create_product(
    product_data: ProductCreate,
    service: ProductService = Depends(get_product_service)
):
    """
    Create a new product.

    - **name**: 2-100 characters (required)
    - **description**: up to 500 characters (optional)
    - **price**: positive, at most two decimals (required)
    - **category**: letters and spaces only (required)
    - **stock**: non-negative (required)
    """
    product = service.create_product(product_data)
    return ApiResponse.ok(
        ProductResponse.model_validate(product),
        "Product created successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.get(
    "/category/{category}",
    response_model=ApiResponse[list[ProductResponse]],
    summary="List products by category"
)
def get_products_by_category(
    category: str,
    service: ProductService = Depends(get_product_service)
):
    """Get active products in a category (exact match)."""
    products = service.get_products_by_category(category)
    return ApiResponse.ok(_to_response(products), f"Products in category '{category}'")


@router.get(
    "/price-range",
    response_model=ApiResponse[list[ProductResponse]],
    summary="List products by price range",
    description="Get active products priced between minPrice and maxPrice, both inclusive."
)
def get_products_by_price_range(
    min_price: Decimal = Query(..., alias="minPrice", description="Minimum price"),
    max_price: Decimal = Query(..., alias="maxPrice", description="Maximum price"),
    service: ProductService = Depends(get_product_service)
):
    """Get active products within a price range."""
    products = service.get_products_by_price_range(min_price, max_price)
    return ApiResponse.ok(_to_response(products), "Products in price range")


@router.get(
    "/search",
    response_model=ApiResponse[list[ProductResponse]],
    summary="Search products by name"
)
def search_products(
    name: str = Query("", description="Text to look for in product names"),
    service: ProductService = Depends(get_product_service)
):
    """Case-insensitive search on product names."""
    products = service.search_products_by_name(name)
    return ApiResponse.ok(_to_response(products), f"Search results for '{name}'")


@router.get(
    "/low-stock",
    response_model=ApiResponse[list[ProductResponse]],
    summary="List products with low stock"
)
def get_products_with_low_stock(
    min_stock: int = Query(..., alias="minStock", description="Stock threshold"),
    service: ProductService = Depends(get_product_service)
):
    """Get active products with stock strictly below `minStock`."""
    products = service.get_products_with_low_stock(min_stock)
    return ApiResponse.ok(_to_response(products), f"Products with stock below {min_stock}")


@router.get(
    "/{product_id}",
    response_model=ApiResponse[ProductResponse],
    summary="Get product by ID",
    description="Get a product by ID. Soft-deleted products are returned with active=false."
)
def get_product(
    product_id: int,
    service: ProductService = Depends(get_product_service)
):
    """Get a product by ID."""
    product = service.get_product_by_id(product_id)

    if not product:
        raise NotFoundError(f"Product with ID {product_id} not found")

    return ApiResponse.ok(ProductResponse.model_validate(product), "Product found")


@router.get(
    "/{product_id}/cached",
    response_model=ApiResponse[dict],
    summary="Get product from cache",
    description="Get product details from Redis cache (or database if not cached)."
)
def get_product_cached(
    product_id: int,
    service: ProductService = Depends(get_product_service)
):
    """
    Get product from cache.

    Returns cached data if available, otherwise fetches from database
    and caches the result.
    """
    product_data = service.get_product_by_id_cached(product_id)

    if not product_data:
        raise NotFoundError(f"Product with ID {product_id} not found")

    return ApiResponse.ok(product_data, "Product found")


@router.put(
    "/{product_id}",
    response_model=ApiResponse[ProductResponse],
    summary="Update a product",
    description="Replace every mutable field of a product."
)
def update_product(
    product_id: int,
    product_data: ProductUpdate,
    service: ProductService = Depends(get_product_service)
):
    """
    Update a product.

    All fields are replaced; cache is invalidated after update.
    """
    product = service.update_product(product_id, product_data)
    return ApiResponse.ok(ProductResponse.model_validate(product), "Product updated successfully")


@router.delete(
    "/{product_id}",
    response_model=ApiResponse,
    summary="Delete a product",
    description="Soft-delete a product. It stays reachable by ID with active=false."
)
def delete_product(
    product_id: int,
    service: ProductService = Depends(get_product_service)
):
    """Soft-delete a product."""
    service.delete_product(product_id)
    return ApiResponse.ok(None, "Product deleted successfully")


@router.patch(
    "/{product_id}/stock",
    response_model=ApiResponse[ProductResponse],
    summary="Update product stock",
    description="Overwrite the stock of a product and queue a low-stock check."
)
def update_product_stock(
    product_id: int,
    stock: int = Query(..., description="New stock value"),
    service: ProductService = Depends(get_product_service)
):
    """Set the stock of a product."""
    product = service.update_stock(product_id, stock)

    # Check the new level in the background; the stock change is already committed
    try:
        check_low_stock.delay(product.id)
    except BrokerError as e:
        logger.warning(f"Could not queue low-stock check for Product #{product.id}: {e}")

    return ApiResponse.ok(ProductResponse.model_validate(product), "Stock updated successfully")
