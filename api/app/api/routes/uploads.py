import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.auth import Principal
from app.core.config import Settings, get_settings
from app.core.security import get_optional_human_principal
from app.schemas.uploads import ImageUploadOut, ImageUploadRequest
from app.services.uploads import ImageUploadDirective, LoginRequiredError

router = APIRouter()
logger = logging.getLogger(__name__)


def get_image_upload_directive(settings: Settings = Depends(get_settings)) -> ImageUploadDirective:
    return ImageUploadDirective.from_settings(settings)


@router.post("/images", response_model=ImageUploadOut, status_code=status.HTTP_201_CREATED)
async def create_image_upload(
    payload: ImageUploadRequest,
    principal: Principal | None = Depends(get_optional_human_principal),
    directive: ImageUploadDirective = Depends(get_image_upload_directive),
) -> ImageUploadOut:
    if principal is not None:
        try:
            principal.require_scopes({"uploads:write"})
        except PermissionError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        instructions = directive.prepare(
            principal.user_id if principal else None,
            payload.file_name,
            payload.content_type,
        )
    except LoginRequiredError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": exc.error, "message": exc.message},
        ) from exc

    logger.info("image upload prepared bucket=%s key=%s", instructions.bucket, instructions.key)
    return ImageUploadOut(
        bucket=instructions.bucket,
        key=instructions.key,
        acl=instructions.acl,
        access_id=instructions.access_id,
        upload_url=instructions.upload_url,
        public_url=instructions.public_url,
        content_type=instructions.content_type,
    )
