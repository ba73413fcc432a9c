"""
User Profile API
"""
import os
import uuid

import logfire
from fastapi import APIRouter, HTTPException, Depends, File, UploadFile
from sqlalchemy.orm import Session

import auth
from auth import get_current_profile
from database import get_db, ProfileDB
from models.user_profile_models import ProfileResponse, UpdateProfileRequest

router = APIRouter()

MAX_IMAGE_BYTES = 5 * 1024 * 1024


async def store_image(folder: str, file: UploadFile) -> str:
    """Validate an uploaded image and push it to the storage bucket. Returns the public URL."""
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Envie um arquivo de imagem")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Arquivo vazio")
    if len(data) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=400, detail="A imagem deve ter no máximo 5 MB")

    extension = os.path.splitext(file.filename or "")[1].lower() or ".jpg"
    path = f"{folder}/{uuid.uuid4()}{extension}"
    try:
        return auth.upload_public_file(path, data, content_type)
    except Exception as e:
        logfire.error("Storage upload failed", path=path, error=str(e))
        raise HTTPException(status_code=502, detail="Falha ao enviar a imagem")


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(profile: ProfileDB = Depends(get_current_profile)):
    return profile


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    request: UpdateProfileRequest,
    profile: ProfileDB = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    """Update the caller's own name, phone and avatar"""
    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)
    db.commit()
    db.refresh(profile)
    return profile


@router.post("/profile/avatar", response_model=ProfileResponse)
async def upload_avatar(
    file: UploadFile = File(...),
    profile: ProfileDB = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    profile.avatar_url = await store_image(f"avatars/{profile.id}", file)
    db.commit()
    db.refresh(profile)
    logfire.info("Avatar updated", user_id=profile.id)
    return profile
