from decimal import Decimal, InvalidOperation

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.sql import func

from app.database import Base
from app.exceptions import ValidationError

PRICE_QUANTUM = Decimal("0.01")
MAX_PRICE_EXCLUSIVE = Decimal("100000000")  # 8 integer digits


class Product(Base):
    """
    Product model representing an item in the catalog.

    Attributes:
        id: Unique identifier assigned by the database
        name: Product name, unique among active products
        description: Optional free-text description
        price: Unit price with two decimal places (must be positive)
        category: Plain category label
        stock: Available quantity (must be non-negative)
        active: False once the product has been soft-deleted
        created_at: Timestamp when product was created
        updated_at: Timestamp of the last mutation
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(String(500), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    stock = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Database-level constraints to ensure data integrity.
    # Name uniqueness only holds among active rows, so it is a partial index.
    __table_args__ = (
        CheckConstraint("price > 0", name="check_price_positive"),
        CheckConstraint("stock >= 0", name="check_stock_non_negative"),
        Index(
            "uq_products_active_name",
            "name",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active"),
        ),
    )

    # Attributes callers may sort listings by
    SORTABLE_FIELDS = (
        "id", "name", "description", "price", "category",
        "stock", "active", "created_at", "updated_at",
    )

    def validate_for_create(self) -> None:
        """
        Re-assert the numeric invariants before the product is persisted.

        Name and category shape are checked by the request schemas; this
        only guards price and stock, which must hold for every stored row.

        Raises:
            ValidationError: If price or stock break a domain rule
        """
        if self.price is None:
            raise ValidationError("Price is required")
        try:
            price = Decimal(str(self.price))
        except InvalidOperation:
            raise ValidationError(f"Invalid price: {self.price!r}")

        if not price.is_finite() or price <= 0:
            raise ValidationError("Price must be greater than 0")
        if price != price.quantize(PRICE_QUANTUM):
            raise ValidationError("Price cannot have more than 2 decimal places")
        if price >= MAX_PRICE_EXCLUSIVE:
            raise ValidationError("Price cannot have more than 8 integer digits")

        if self.stock is None:
            raise ValidationError("Stock is required")
        if self.stock < 0:
            raise ValidationError("Stock cannot be negative")

        self.price = price.quantize(PRICE_QUANTUM)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock}, active={self.active})>"
