import logging
import os
import re
from typing import Optional

from fastapi import HTTPException, UploadFile


logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
ALLOWED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp'}
ALLOWED_MIME_TYPES = {'image/jpeg', 'image/png', 'image/webp'}

_IDENTIFIER_RE = re.compile(r'^[a-zA-Z0-9_-]+$')
_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def validate_file(file: UploadFile, size: Optional[int] = None) -> None:
    file_size = size if size is not None else getattr(file, 'size', None)
    if file_size and file_size > MAX_FILE_SIZE:
        raise HTTPException(status_code=413, detail=f"File too large. Maximum size is {MAX_FILE_SIZE // (1024*1024)}MB")

    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    if '..' in file.filename or '/' in file.filename or '\\' in file.filename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    file_ext = os.path.splitext(file.filename.lower())[1]
    if file_ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail=f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    if file.content_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid MIME type. Allowed: {', '.join(sorted(ALLOWED_MIME_TYPES))}")


def validate_identifier(name: str, value: Optional[str]) -> None:
    if value and not _IDENTIFIER_RE.match(value):
        raise HTTPException(status_code=400, detail=f"Invalid {name} format")


def validate_email(email: Optional[str]) -> str:
    normalized = (email or "").strip().lower()
    if not normalized:
        raise HTTPException(status_code=400, detail="Email is required")
    if not _EMAIL_RE.match(normalized):
        raise HTTPException(status_code=400, detail="Invalid email format")
    return normalized
