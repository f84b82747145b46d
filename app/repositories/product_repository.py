"""
Storage for Product records.

`ProductRepository` is the contract the catalog service depends on;
`SQLAlchemyProductRepository` implements it over a SQLAlchemy session.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import ConflictError, StorageError
from app.models.product import Product

logger = logging.getLogger(__name__)

ACTIVE_NAME_INDEX = "uq_products_active_name"
# SQLite reports the column instead of the index name
SQLITE_NAME_VIOLATION = "UNIQUE constraint failed: products.name"


def _is_active_name_violation(error: IntegrityError) -> bool:
    """Return True if the error comes from the active-name unique index."""
    diag = getattr(error.orig, "diag", None)
    if diag is not None:
        # psycopg2 exposes the violated constraint directly
        return getattr(diag, "constraint_name", None) == ACTIVE_NAME_INDEX
    message = str(error.orig)
    return ACTIVE_NAME_INDEX in message or SQLITE_NAME_VIOLATION in message


class ProductRepository(ABC):
    """Abstract storage collaborator for products."""

    @abstractmethod
    def insert(self, product: Product) -> Product:
        """Persist a new product and return it with its assigned id."""

    @abstractmethod
    def find_by_id(self, product_id: int, for_update: bool = False) -> Optional[Product]:
        """Return the product with that id whatever its active flag, or None."""

    @abstractmethod
    def find_all(self) -> list[Product]:
        """Return every stored product ordered by id."""

    @abstractmethod
    def find_all_paged(
        self,
        offset: int,
        limit: int,
        sort_field: str,
        sort_direction: str,
        *criteria,
    ) -> tuple[list[Product], int]:
        """Return one sorted slice of matching products and the total match count."""

    @abstractmethod
    def find_by_predicate(self, *criteria) -> list[Product]:
        """Return products matching every criterion, ordered by id."""

    @abstractmethod
    def update(self, product: Product) -> Product:
        """Overwrite the stored product with the same id."""

    @abstractmethod
    def exists_active_name(self, name: str, exclude_id: Optional[int] = None) -> bool:
        """Return True if an active product other than `exclude_id` has that name."""


class SQLAlchemyProductRepository(ProductRepository):
    """
    Product storage backed by a SQLAlchemy session.

    The partial unique index on active names is the source of truth for
    uniqueness; its violation is reported as ConflictError. Any other
    database failure is rolled back and reported as StorageError.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _translate_errors(self, action: str):
        try:
            yield
        except IntegrityError as e:
            self.db.rollback()
            if not _is_active_name_violation(e):
                logger.error(f"Integrity error while trying to {action}: {e.orig}")
                raise StorageError(f"Could not {action}") from e
            logger.warning(f"Duplicate active name while trying to {action}: {e.orig}")
            raise ConflictError("A product with the same name already exists") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error while trying to {action}: {e}")
            raise StorageError(f"Could not {action}") from e

    def insert(self, product: Product) -> Product:
        with self._translate_errors("create product"):
            self.db.add(product)
            self.db.commit()
            self.db.refresh(product)
        return product

    def find_by_id(self, product_id: int, for_update: bool = False) -> Optional[Product]:
        with self._translate_errors(f"load product {product_id}"):
            query = self.db.query(Product).filter(Product.id == product_id)
            if for_update:
                # Pessimistic lock held until the mutation commits
                query = query.with_for_update()
            return query.first()

    def find_all(self) -> list[Product]:
        with self._translate_errors("list products"):
            return self.db.query(Product).order_by(Product.id.asc()).all()

    def find_all_paged(
        self,
        offset: int,
        limit: int,
        sort_field: str,
        sort_direction: str,
        *criteria,
    ) -> tuple[list[Product], int]:
        column = getattr(Product, sort_field)
        ordering = [column.desc() if sort_direction == "desc" else column.asc()]
        if sort_field != "id":
            # Stable order for rows sharing the same sort value
            ordering.append(Product.id.asc())

        with self._translate_errors("list products"):
            total = self.db.scalar(
                select(func.count()).select_from(Product).where(*criteria)
            )
            products = (
                self.db.query(Product)
                .filter(*criteria)
                .order_by(*ordering)
                .offset(offset)
                .limit(limit)
                .all()
            )
        return products, total

    def find_by_predicate(self, *criteria) -> list[Product]:
        with self._translate_errors("query products"):
            return (
                self.db.query(Product)
                .filter(*criteria)
                .order_by(Product.id.asc())
                .all()
            )

    def update(self, product: Product) -> Product:
        with self._translate_errors(f"update product {product.id}"):
            self.db.add(product)
            self.db.commit()
            self.db.refresh(product)
        return product

    def exists_active_name(self, name: str, exclude_id: Optional[int] = None) -> bool:
        with self._translate_errors("check product name"):
            query = self.db.query(Product.id).filter(
                Product.name == name,
                Product.active.is_(True),
            )
            if exclude_id is not None:
                query = query.filter(Product.id != exclude_id)
            return self.db.query(query.exists()).scalar()
