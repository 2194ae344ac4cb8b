"""
User routes - account removal only; sign-up and login live in the auth service.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from butik.api.deps import CurrentUser, get_current_admin
from butik.core.database import get_db
from butik.core.exceptions import ConflictError
from butik.schemas.common import success_response
from butik.services import storage
from butik.services.user_service import delete_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.delete("/{user_id}")
async def remove_user(
    user_id: int,
    admin: CurrentUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    if user_id == admin.id:
        raise ConflictError("Admins cannot delete their own account")

    proofs = await delete_user(db, user_id)
    for proof in proofs:
        storage.delete_file(proof)

    logger.info("Admin %s deleted user %s", admin.id, user_id)
    return success_response({"id": user_id}, message="User deleted")
