from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, List
import logging
import math

from sqlalchemy import func

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.product import Product
from app.repositories.product_repository import ProductRepository
from app.schemas.product import ProductCreate, ProductUpdate, ProductResponse
from app.utils.cache import CacheService, cache_service

SORT_DIRECTIONS = ("asc", "desc")
# Largest OFFSET/LIMIT the database accepts (signed 64-bit)
MAX_ROW_OFFSET = 2 ** 63 - 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProductPage:
    """One page of an ordered product listing."""
    content: List[Product]
    page: int
    size: int
    total_elements: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size)

    @property
    def first(self) -> bool:
        return self.page == 0

    @property
    def last(self) -> bool:
        return not self.has_next

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 0


class ProductService:
    """
    Service class for the product catalog.

    This service is the only component that mutates products. It handles:
    - Creating products with active-name uniqueness
    - Reading products by id (with caching) and listing them
    - Filtering by category, price range, name and stock level
    - Full updates, stock updates and soft deletes
    - Cache invalidation after every mutation

    Listing policy: every query-style listing (paged, category, price
    range, name search, low stock) only returns active products. Lookup
    by id and the unpaged full listing also return soft-deleted ones.
    """

    CACHE_PREFIX = "product"

    def __init__(
        self,
        repository: ProductRepository,
        cache: CacheService = cache_service,
        logger: logging.Logger = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.cache = cache
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def create_product(self, product_data: ProductCreate) -> Product:
        """
        Create a new product.

        The name pre-check only exits early; a concurrent create that slips
        past it is rejected by the storage unique index instead.

        Args:
            product_data: Product creation data

        Returns:
            Created product instance

        Raises:
            ValidationError: If price or stock break a domain rule
            ConflictError: If an active product already has that name
        """
        product = Product(**product_data.model_dump())
        product.validate_for_create()

        if self.repository.exists_active_name(product.name):
            raise ConflictError(f"A product named '{product.name}' already exists")

        now = self.clock()
        product.active = True
        product.created_at = now
        product.updated_at = now

        product = self.repository.insert(product)
        self.logger.info(f"Product #{product.id} '{product.name}' created")
        return product

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        """
        Get a product by ID whether or not it is active.

        Returns:
            Product instance or None if not found
        """
        product = self.repository.find_by_id(product_id)
        if product:
            self._cache_product(product)
        return product

    def get_product_by_id_cached(self, product_id: int) -> Optional[dict]:
        """
        Get product details from cache or database.
        Returns a dictionary (suitable for API response).
        """
        cached = self.cache.get(self.CACHE_PREFIX, str(product_id))
        if cached:
            return cached

        product = self.repository.find_by_id(product_id)
        if product:
            return self._cache_product(product)
        return None

    def get_all_products(self, include_inactive: bool = True) -> List[Product]:
        """
        Get every product ordered by id.

        Soft-deleted products are included unless `include_inactive` is False.
        """
        if include_inactive:
            return self.repository.find_all()
        return self.repository.find_by_predicate(Product.active.is_(True))

    def get_all_products_paged(
        self,
        page: int = 0,
        size: int = 20,
        sort_field: str = "id",
        sort_direction: str = "asc",
    ) -> ProductPage:
        """
        Get one page of active products.

        Args:
            page: Page number (0-indexed)
            size: Number of items per page
            sort_field: Product attribute to sort by
            sort_direction: 'asc' or 'desc' (case-insensitive)

        Returns:
            ProductPage with the slice and its navigation metadata

        Raises:
            ValidationError: On a bad page, size, sort field or direction
        """
        if page < 0:
            raise ValidationError("Page index must not be negative")
        if size < 1:
            raise ValidationError("Page size must be at least 1")
        if size > MAX_ROW_OFFSET or page * size > MAX_ROW_OFFSET:
            raise ValidationError("Page index or size is too large")
        if sort_field not in Product.SORTABLE_FIELDS:
            raise ValidationError(f"Cannot sort by unknown field '{sort_field}'")
        direction = (sort_direction or "").lower()
        if direction not in SORT_DIRECTIONS:
            raise ValidationError(f"Sort direction must be 'asc' or 'desc', got '{sort_direction}'")

        products, total = self.repository.find_all_paged(
            page * size, size, sort_field, direction, Product.active.is_(True)
        )
        return ProductPage(content=products, page=page, size=size, total_elements=total)

    def update_product(self, product_id: int, product_data: ProductUpdate) -> Product:
        """
        Replace the mutable fields of a product.

        Raises:
            ValidationError: If price or stock break a domain rule
            NotFoundError: If no product has that id
            ConflictError: If another active product already has the new name
        """
        values = product_data.model_dump()
        Product(**values).validate_for_create()

        product = self.repository.find_by_id(product_id, for_update=True)
        if not product:
            raise NotFoundError(f"Product with ID {product_id} not found")

        if self.repository.exists_active_name(product_data.name, exclude_id=product_id):
            raise ConflictError(f"A product named '{product_data.name}' already exists")

        for field, value in values.items():
            setattr(product, field, value)
        product.validate_for_create()
        product.updated_at = self.clock()

        product = self.repository.update(product)
        self._invalidate_cache(product_id)
        self.logger.info(f"Product #{product_id} updated")
        return product

    def delete_product(self, product_id: int) -> Product:
        """
        Soft-delete a product by marking it inactive.

        Deleting a product that is already inactive changes nothing.

        Raises:
            NotFoundError: If no product has that id
        """
        product = self.repository.find_by_id(product_id, for_update=True)
        if not product:
            raise NotFoundError(f"Product with ID {product_id} not found")

        if not product.active:
            return product

        product.active = False
        product.updated_at = self.clock()
        product = self.repository.update(product)
        self._invalidate_cache(product_id)
        self.logger.info(f"Product #{product_id} deactivated")
        return product

    def get_products_by_category(self, category: str) -> List[Product]:
        """Get active products whose category matches exactly."""
        if not category:
            return []
        return self.repository.find_by_predicate(
            Product.active.is_(True),
            Product.category == category,
        )

    def get_products_by_price_range(self, min_price, max_price) -> List[Product]:
        """
        Get active products priced within [min_price, max_price].

        Raises:
            ValidationError: If a bound is negative or min_price > max_price
        """
        low = self._to_decimal(min_price, "Minimum price")
        high = self._to_decimal(max_price, "Maximum price")
        if low < 0 or high < 0:
            raise ValidationError("Prices cannot be negative")
        if low > high:
            raise ValidationError("Minimum price cannot be greater than maximum price")

        return self.repository.find_by_predicate(
            Product.active.is_(True),
            Product.price >= low,
            Product.price <= high,
        )

    def search_products_by_name(self, fragment: str) -> List[Product]:
        """Case-insensitive substring search on product names."""
        criteria = [Product.active.is_(True)]
        if fragment:
            criteria.append(
                func.lower(Product.name).contains(fragment.lower(), autoescape=True)
            )
        return self.repository.find_by_predicate(*criteria)

    def get_products_with_low_stock(self, threshold: int) -> List[Product]:
        """
        Get active products whose stock is strictly below `threshold`.

        Raises:
            ValidationError: If threshold is negative
        """
        if threshold is None or threshold < 0:
            raise ValidationError("Stock threshold cannot be negative")
        return self.repository.find_by_predicate(
            Product.active.is_(True),
            Product.stock < threshold,
        )

    def update_stock(self, product_id: int, new_stock: int) -> Product:
        """
        Overwrite the stock of a product.

        Raises:
            ValidationError: If new_stock is negative
            NotFoundError: If no product has that id
        """
        if new_stock is None or new_stock < 0:
            raise ValidationError("Stock cannot be negative")

        product = self.repository.find_by_id(product_id, for_update=True)
        if not product:
            raise NotFoundError(f"Product with ID {product_id} not found")

        product.stock = new_stock
        product.updated_at = self.clock()
        product = self.repository.update(product)
        self._invalidate_cache(product_id)
        self.logger.info(f"Product #{product_id} stock set to {new_stock}")
        return product

    @staticmethod
    def _to_decimal(value, label: str) -> Decimal:
        if value is None:
            raise ValidationError(f"{label} is required")
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"{label} is not a valid number: {value!r}")
        if not number.is_finite():
            raise ValidationError(f"{label} must be a finite number")
        return number

    def _cache_product(self, product: Product) -> dict:
        """Cache a product instance and return the cached payload."""
        product_dict = ProductResponse.model_validate(product).model_dump(mode="json")
        self.cache.set(self.CACHE_PREFIX, str(product.id), product_dict)
        return product_dict

    def _invalidate_cache(self, product_id: int) -> None:
        """Invalidate cache for a product."""
        self.cache.delete(self.CACHE_PREFIX, str(product_id))
