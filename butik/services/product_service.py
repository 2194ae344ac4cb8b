"""
Product catalogue operations.

Stock set here is an administrative edit; orders take stock only through
the inventory ledger when payment proof arrives.
"""
import logging
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from butik.core.database import atomic
from butik.core.exceptions import InvalidInputError, NoFieldsProvidedError, NotFoundError
from butik.core.utils import quantize_money, utcnow
from butik.models import CartItem, OrderItem, Product
from butik.schemas.common import Pagination
from butik.schemas.product import ProductResponse
from butik.utils.input_sanitizer import sanitize_decimal, sanitize_integer, sanitize_string

logger = logging.getLogger(__name__)


@dataclass
class ProductPatch:
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Any] = None
    stock: Optional[Any] = None
    image: Optional[str] = None

    def provided(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


def serialize_product(product: Product) -> Dict[str, Any]:
    return ProductResponse.model_validate(product).model_dump(mode="json")


def _clean_values(values: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = dict(values)
    if "name" in cleaned:
        cleaned["name"] = sanitize_string(cleaned["name"], 255)
        if not cleaned["name"]:
            raise InvalidInputError("Product name is required", field="name")
    if "description" in cleaned:
        cleaned["description"] = sanitize_string(cleaned["description"])
    if "price" in cleaned:
        cleaned["price"] = quantize_money(
            sanitize_decimal(cleaned["price"], "price", min_value=Decimal("0"))
        )
    if "stock" in cleaned:
        cleaned["stock"] = sanitize_integer(cleaned["stock"], "stock", min_value=0)
    return cleaned


class ProductService:

    @staticmethod
    async def create(
        db: AsyncSession,
        name: Any,
        price: Any,
        stock: Any = 0,
        description: Any = None,
        image: Optional[str] = None,
    ) -> Product:
        values = _clean_values({
            "name": name,
            "description": description,
            "price": price,
            "stock": 0 if stock in (None, "") else stock,
        })
        async with atomic(db):
            product = Product(image=image, **values)
            db.add(product)
            await db.flush()

        logger.info("Created product %s (%s), stock %s", product.id, product.name, product.stock)
        return product

    @staticmethod
    async def get(db: AsyncSession, product_id: int) -> Product:
        result = await db.execute(
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        product = result.scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    @staticmethod
    async def list_products(
        db: AsyncSession,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Paginated catalogue, newest first. `search` matches name or description."""
        page = max(page, 1)
        conditions = []
        search = sanitize_string(search, 100)
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))

        count_result = await db.execute(select(func.count(Product.id)).where(*conditions))
        total = count_result.scalar() or 0

        result = await db.execute(
            select(Product)
            .where(*conditions)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "products": [serialize_product(p) for p in result.scalars().all()],
            "pagination": Pagination.build(page, limit, total).model_dump(),
        }

    @staticmethod
    async def update(
        db: AsyncSession, product_id: int, patch: ProductPatch
    ) -> Tuple[Product, Optional[str]]:
        """
        Apply a partial update in one statement.

        Returns the refreshed product and, when the image was replaced, the
        previous image reference so the caller can delete the file.
        """
        values = patch.provided()
        if not values:
            raise NoFieldsProvidedError()
        values = _clean_values(values)

        async with atomic(db):
            product = await ProductService.get(db, product_id)
            old_image = product.image if "image" in values and product.image != values["image"] else None

            values["updated_at"] = utcnow()
            await db.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            product = await ProductService.get(db, product_id)

        logger.info("Updated product %s: %s", product_id, ", ".join(sorted(patch.provided())))
        return product, old_image

    @staticmethod
    async def delete(db: AsyncSession, product_id: int) -> Optional[str]:
        """
        Delete a product.

        Cart lines holding it are removed. Order lines keep their name and
        unit price snapshot with product_id cleared, so past orders stay
        intact. Returns the product's image reference.
        """
        async with atomic(db):
            product = await ProductService.get(db, product_id)
            image = product.image

            carts = await db.execute(
                delete(CartItem)
                .where(CartItem.product_id == product_id)
                .execution_options(synchronize_session=False)
            )
            orphaned = await db.execute(
                update(OrderItem)
                .where(OrderItem.product_id == product_id)
                .values(product_id=None)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(Product)
                .where(Product.id == product_id)
                .execution_options(synchronize_session=False)
            )
        db.expunge(product)
        db.expire_all()

        logger.info(
            "Deleted product %s: %s cart lines removed, %s order lines detached",
            product_id, carts.rowcount, orphaned.rowcount,
        )
        return image
