from fastapi import APIRouter, Depends, UploadFile, File, Query, HTTPException
from typing import List, Literal
from functools import partial
from uuid import uuid4
import os
import logging
import aiofiles
import anyio
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from ..models import User
from ..dependencies.auth import get_current_user
from ..exceptions import AppException, ErrorCode

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["upload"])

UploadType = Literal["assignment", "profile", "material"]

FOLDERS = {"assignment": "assignments", "profile": "profiles", "material": "materials"}

DOCUMENTS = {"pdf", "doc", "docx", "ppt", "pptx", "xls", "xlsx", "txt", "zip", "rar"}
IMAGES = {"jpg", "jpeg", "png"}
MEDIA = {"mp4", "mov", "mp3", "wav"}

ALLOWED_EXTENSIONS = {
    "assignment": DOCUMENTS | IMAGES,
    "profile": IMAGES,
    "material": DOCUMENTS | IMAGES | MEDIA,
}

MAX_FILES = 5


def upload_dir() -> str:
    return os.getenv("UPLOAD_DIR", "./uploads")


def max_upload_bytes() -> int:
    return int(os.getenv("MAX_UPLOAD_MB", "25")) * 1024 * 1024


def s3_client():
    """A boto3 client when S3 is configured, else None (local disk is used)."""
    bucket = os.getenv("S3_BUCKET")
    key_id = os.getenv("AWS_ACCESS_KEY_ID")
    secret = os.getenv("AWS_SECRET_ACCESS_KEY")
    if not (bucket and key_id and secret):
        return None
    return boto3.client(
        "s3",
        region_name=os.getenv("AWS_REGION", "us-east-1"),
        aws_access_key_id=key_id,
        aws_secret_access_key=secret,
    )


def check_extension(filename: str, upload_type: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    allowed = ALLOWED_EXTENSIONS[upload_type]
    if ext not in allowed:
        raise AppException(
            status_code=400,
            error_code=ErrorCode.FILE_TYPE_NOT_ALLOWED,
            message=f"Only {', '.join(sorted(allowed))} files are allowed for {upload_type} uploads",
            details={"filename": filename},
        )
    return ext


async def store_file(file: UploadFile, upload_type: str) -> dict:
    ext = check_extension(file.filename, upload_type)
    content = await file.read()
    if len(content) > max_upload_bytes():
        raise AppException(
            status_code=400,
            error_code=ErrorCode.FILE_TOO_LARGE,
            message=f"File exceeds the {os.getenv('MAX_UPLOAD_MB', '25')} MB limit",
            details={"filename": file.filename, "size": len(content)},
        )

    folder = FOLDERS[upload_type]
    filename = f"{uuid4().hex}.{ext}"
    client = s3_client()
    try:
        if client is not None:
            bucket = os.getenv("S3_BUCKET")
            key = f"{folder}/{filename}"
            await anyio.to_thread.run_sync(partial(
                client.put_object, Bucket=bucket, Key=key, Body=content,
                ContentType=file.content_type or "application/octet-stream",
            ))
            region = os.getenv("AWS_REGION", "us-east-1")
            file_path = f"https://{bucket}.s3.{region}.amazonaws.com/{key}"
        else:
            target = os.path.join(upload_dir(), folder)
            os.makedirs(target, exist_ok=True)
            async with aiofiles.open(os.path.join(target, filename), "wb") as out_file:
                await out_file.write(content)
            file_path = f"uploads/{folder}/{filename}"
    except (OSError, BotoCoreError, ClientError) as e:
        logger.error(f"Failed to store {file.filename} ({upload_type}): {e}")
        raise AppException(
            status_code=500,
            error_code=ErrorCode.STORAGE_ERROR,
            message="Failed to save file",
        )

    return {
        "original_name": file.filename,
        "filename": filename,
        "file_path": file_path,
        "size": len(content),
        "mime_type": file.content_type,
    }


@router.post("", status_code=201)
async def upload_file(
        file: UploadFile = File(...),
        type: UploadType = Query("material"),
        current_user: User = Depends(get_current_user)
):
    stored = await store_file(file, type)
    logger.info(f"{current_user.username} uploaded {stored['file_path']}")
    return {"message": "File uploaded successfully", "file": stored, "file_path": stored["file_path"]}


@router.post("/multiple", status_code=201)
async def upload_files(
        files: List[UploadFile] = File(...),
        type: UploadType = Query("material"),
        current_user: User = Depends(get_current_user)
):
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(files) > MAX_FILES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_FILES} files per upload")

    # validate everything before writing anything
    for file in files:
        check_extension(file.filename, type)
    stored = [await store_file(file, type) for file in files]
    logger.info(f"{current_user.username} uploaded {len(stored)} files")
    return {"message": "Files uploaded successfully", "files": stored}
