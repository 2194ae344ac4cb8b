"""
Order routes

Role rules:
- non-admins only ever see and touch their own orders
- non-admins may edit shipping details or cancel, and only while the
  order is still unpaid (belum_bayar)
- deletion is admin only
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from butik.api.deps import CurrentUser, get_current_admin, get_current_user
from butik.core.config import settings
from butik.core.database import get_db
from butik.core.exceptions import ConflictError
from butik.models import OrderStatus
from butik.schemas.common import success_response
from butik.schemas.order import OrderCreate, OrderUpdate
from butik.services import storage
from butik.services.order_service import OrderPatch, OrderService, parse_status, serialize_order
from butik.services.report_service import sales_report

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create an unpaid order. Admins may place it for another user."""
    owner_id = order_data.user_id if (user.is_admin and order_data.user_id) else user.id
    order = await OrderService.create(
        db,
        user_id=owner_id,
        shipping_method=order_data.shipping_method,
        shipping_address=order_data.shipping_address,
        shipping_cost=order_data.shipping_cost,
        items=order_data.items,
    )
    return success_response(serialize_order(order), message="Order created")


@router.get("")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.ORDERS_PAGE_SIZE, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    user_id: Optional[int] = Query(None, gt=0),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = await OrderService.list_orders(
        db,
        viewer_id=user.id,
        viewer_is_admin=user.is_admin,
        page=page,
        limit=limit,
        status=status_filter,
        user_id=user_id,
    )
    return success_response(data)


@router.get("/filter")
async def filter_orders(
    status_filter: str = Query("semua", alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.ORDERS_PAGE_SIZE, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Orders with one status ("semua" for all) plus per-status counts."""
    data = await OrderService.list_orders(
        db,
        viewer_id=user.id,
        viewer_is_admin=user.is_admin,
        page=page,
        limit=limit,
        status=status_filter,
        include_summary=True,
    )
    return success_response(data)


@router.get("/reports/sales")
async def get_sales_report(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    q: Optional[str] = Query(None, max_length=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = await sales_report(
        db,
        viewer_id=user.id,
        viewer_is_admin=user.is_admin,
        start_date=start_date,
        end_date=end_date,
        query=q,
    )
    return success_response(data)


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.get(db, order_id, user.scope_user_id)
    return success_response(serialize_order(order))


@router.put("/{order_id}")
async def update_order(
    order_id: int,
    order_data: OrderUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    patch = OrderPatch(**order_data.model_dump())

    if not user.is_admin:
        if patch.shipping_cost is not None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only admins can change shipping cost",
            )
        if patch.status is not None and parse_status(patch.status) != OrderStatus.DIBATALKAN:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only cancel your order",
            )
        current = await OrderService.get(db, order_id, user.id)
        if current.status != OrderStatus.BELUM_BAYAR.value:
            raise ConflictError(
                "Order can only be changed while it is awaiting payment",
                details={"order_id": order_id, "status": current.status},
            )

    order = await OrderService.update_fields(db, order_id, patch, user.scope_user_id)
    return success_response(serialize_order(order), message="Order updated")


@router.put("/{order_id}/transfer-proof")
async def upload_transfer_proof(
    order_id: int,
    transfer_proof: UploadFile = File(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Attach payment evidence. The first proof takes stock for every line;
    if any line cannot be covered nothing changes and the file is removed.
    """
    content = await transfer_proof.read()
    proof_ref = storage.save_image(content, field="transfer_proof")

    try:
        attachment = await OrderService.attach_payment_proof(
            db, order_id, proof_ref, user.scope_user_id
        )
    except Exception:
        storage.delete_file(proof_ref)
        raise

    storage.delete_file(attachment.replaced_proof)

    data = serialize_order(attachment.order)
    data["stock_applied"] = attachment.stock_applied
    message = (
        "Transfer proof uploaded and stock updated"
        if attachment.stock_applied
        else "Transfer proof replaced"
    )
    return success_response(data, message=message)


@router.delete("/{order_id}")
async def delete_order(
    order_id: int,
    admin: CurrentUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    proof_ref = await OrderService.delete(db, order_id)
    storage.delete_file(proof_ref)
    logger.info("Admin %s deleted order %s", admin.id, order_id)
    return success_response({"id": order_id}, message="Order deleted")
