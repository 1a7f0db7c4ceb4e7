from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.apis.deps import require_identity
from app.core.avatar_manager import AvatarFileManager, AvatarValidationError, avatar_manager
from app.core.config import settings
from app.core.db.base import get_session
from app.core.db_services import ProfileService
from app.core.logging import get_logger, log_extra
from .schemas import UserProfileRead, UserProfileUpdate


router = APIRouter()

logger = get_logger(__name__)


def get_avatar_manager() -> AvatarFileManager:
    return avatar_manager


@router.get(
    f"/{settings.app.version}/profile",
    response_model=UserProfileRead,
    tags=["user_profile"],
)
async def get_profile(
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(require_identity),
):
    """Get user profile, auto-create if doesn't exist"""
    profile = await ProfileService(session).get_or_create(identity)
    return UserProfileRead.model_validate(profile)


@router.put(
    f"/{settings.app.version}/profile",
    response_model=UserProfileRead,
    tags=["user_profile"],
)
async def update_profile(
    profile_data: UserProfileUpdate,
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(require_identity),
):
    """Update user profile, auto-create if doesn't exist"""
    update_data = profile_data.model_dump(exclude_unset=True)
    profile = await ProfileService(session).update(identity, **update_data)
    return UserProfileRead.model_validate(profile)


@router.post(
    f"/{settings.app.version}/profile/avatar",
    response_model=UserProfileRead,
    status_code=status.HTTP_201_CREATED,
    tags=["user_profile"],
)
async def upload_avatar(
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(require_identity),
    avatars: AvatarFileManager = Depends(get_avatar_manager),
):
    """Store a new avatar image and point the profile at its public URL."""
    # One byte past the limit is enough to reject an oversized upload
    data = await file.read(avatars.max_bytes + 1)
    try:
        path = avatars.save(identity, data, file.content_type)
    except AvatarValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    svc = ProfileService(session)
    previous = (await svc.get_or_create(identity)).avatar_path
    profile = await svc.update(
        identity, avatar_path=path, avatar_url=avatars.get_public_url(path)
    )
    if previous and previous != path:
        avatars.delete(previous)
    logger.info(f"Avatar uploaded: {path}", extra=log_extra(identity))
    return UserProfileRead.model_validate(profile)


@router.delete(
    f"/{settings.app.version}/profile/avatar",
    response_model=UserProfileRead,
    tags=["user_profile"],
)
async def delete_avatar(
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(require_identity),
    avatars: AvatarFileManager = Depends(get_avatar_manager),
):
    svc = ProfileService(session)
    profile = await svc.get_or_create(identity)
    avatars.delete(profile.avatar_path)
    profile = await svc.update(identity, avatar_path=None, avatar_url=None)
    return UserProfileRead.model_validate(profile)
