from fastapi import APIRouter, Depends

from ..auth.dependencies import AuthUser, authenticate_token
from ..schemas import BatchDeleteRequest
from ..services import cloudinary


router = APIRouter(prefix="/cloudinary", tags=["cloudinary"])


@router.post("/batch-delete")
async def batch_delete(body: BatchDeleteRequest, user: AuthUser = Depends(authenticate_token)):
    return cloudinary.batch_delete([resource.model_dump() for resource in body.resources])


@router.delete("/{resource_type}/{public_id:path}")
async def delete_resource(resource_type: str, public_id: str, user: AuthUser = Depends(authenticate_token)):
    return cloudinary.delete_resource(public_id, resource_type)
