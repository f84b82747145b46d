import logging

from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.database import SessionLocal
from app.models.product import Product
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)
settings = get_settings()


@celery_app.task(bind=True, name="check_low_stock")
def check_low_stock(self, product_id: int, threshold: int = None) -> dict:
    """
    Background task run after a product's stock changes.

    Flags the product when it is still active and its stock dropped below
    the configured threshold. Alerting hooks (purchasing, e-mail) would
    be attached here.

    Args:
        product_id: ID of the product whose stock changed
        threshold: Override for LOW_STOCK_THRESHOLD

    Returns:
        Dictionary with the check result
    """
    threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else threshold
    db = SessionLocal()

    try:
        product = db.query(Product).filter(Product.id == product_id).first()

        if not product:
            logger.error(f"Product #{product_id} not found")
            return {"status": "failed", "product_id": product_id, "error": "Product not found"}

        if product.active and product.stock < threshold:
            logger.warning(
                f"Product #{product_id} '{product.name}' is low on stock: "
                f"{product.stock} left (threshold {threshold})"
            )
            return {
                "status": "low_stock",
                "product_id": product_id,
                "stock": product.stock,
                "threshold": threshold,
            }

        return {"status": "ok", "product_id": product_id, "stock": product.stock}

    except SQLAlchemyError as e:
        logger.error(f"Error checking stock for Product #{product_id}: {e}")
        raise self.retry(exc=e, countdown=30, max_retries=3)

    finally:
        db.close()
