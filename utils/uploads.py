"""
Storage of uploaded files (transfer proofs, QRIS images) under config.UPLOAD_DIR.
"""
import time
from pathlib import Path
from typing import Iterable

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from config import config
from utils.exceptions import ValidationException
from utils.logger import get_logger

logger = get_logger("uploads")


def file_extension(filename: str) -> str:
    name = secure_filename(filename or "")
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def check_upload(file: FileStorage, allowed: Iterable[str], label: str = "File") -> str:
    """Validate presence and extension; returns the extension."""
    if file is None or not file.filename:
        raise ValidationException(f"{label} wajib diupload")
    ext = file_extension(file.filename)
    if ext not in allowed:
        raise ValidationException(f"Format {label.lower()} tidak didukung")
    return ext


def save_upload(file: FileStorage, prefix: str, subdir: str = "") -> str:
    """
    Save an upload as `{prefix}-{ms}.{ext}` and return its public URL path,
    e.g. `/uploads/proofs/proof-1700000000000.jpg`.
    """
    ext = file_extension(file.filename)
    target_dir = Path(config.UPLOAD_DIR) / subdir if subdir else Path(config.UPLOAD_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)

    filename = f"{prefix}-{int(time.time() * 1000)}.{ext}"
    file.save(str(target_dir / filename))
    logger.info("Upload saved", path=str(target_dir / filename))

    return "/uploads/" + (f"{subdir}/{filename}" if subdir else filename)
