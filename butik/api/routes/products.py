"""
Product routes

Create and update take multipart form data so an image can ride along.
An image stored for a request that then fails is removed again.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from butik.api.deps import CurrentUser, get_current_admin
from butik.core.config import settings
from butik.core.database import get_db
from butik.schemas.common import success_response
from butik.services import storage
from butik.services.product_service import ProductPatch, ProductService, serialize_product

logger = logging.getLogger(__name__)

router = APIRouter()


async def _store_upload(upload: Optional[UploadFile]) -> Optional[str]:
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    return storage.save_image(content, field="image")


@router.get("")
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.PRODUCTS_PAGE_SIZE, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    data = await ProductService.list_products(db, page, limit, search)
    return success_response(data)


@router.get("/{product_id}")
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    product = await ProductService.get(db, product_id)
    return success_response(serialize_product(product))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    name: str = Form(...),
    price: str = Form(...),
    stock: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    admin: CurrentUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    image_ref = await _store_upload(image)
    try:
        product = await ProductService.create(
            db, name=name, price=price, stock=stock, description=description, image=image_ref
        )
    except Exception:
        storage.delete_file(image_ref)
        raise

    logger.info("Admin %s created product %s", admin.id, product.id)
    return success_response(serialize_product(product), message="Product created")


@router.put("/{product_id}")
async def update_product(
    product_id: int,
    name: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    admin: CurrentUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    image_ref = await _store_upload(image)
    patch = ProductPatch(
        name=name, description=description, price=price, stock=stock, image=image_ref
    )
    try:
        product, old_image = await ProductService.update(db, product_id, patch)
    except Exception:
        storage.delete_file(image_ref)
        raise

    storage.delete_file(old_image)
    logger.info("Admin %s updated product %s", admin.id, product_id)
    return success_response(serialize_product(product), message="Product updated")


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    admin: CurrentUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    image_ref = await ProductService.delete(db, product_id)
    storage.delete_file(image_ref)
    logger.info("Admin %s deleted product %s", admin.id, product_id)
    return success_response({"id": product_id}, message="Product deleted")
