"""
Attachment handling for files picked from disk.

Validates size and type the same way for documents, audio recordings and
images, and packages them as multipart parts for httpx.
"""

import mimetypes
import uuid
from pathlib import Path
from typing import Literal, Optional, Tuple, Union

from medpro.models.assistant import Attachment
from medpro.services.errors import AttachmentError
from medpro.utils.config import settings
from medpro.utils.logging import get_logger

logger = get_logger(__name__)

AttachmentKind = Literal["attachment", "audio", "image"]

_DEFAULT_TYPES = {
    "attachment": "application/octet-stream",
    "audio": "audio/mp4",
    "image": "image/jpeg",
}

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]


def format_file_size(num_bytes: int) -> str:
    """Human readable size, base 1024 with at most two decimals."""
    if num_bytes <= 0:
        return "0 Bytes"
    i = 0
    while num_bytes >= 1024 ** (i + 1) and i < len(_SIZE_UNITS) - 1:
        i += 1
    value = round(num_bytes / (1024 ** i), 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[i]}"


def guess_mime_type(path: Union[str, Path], kind: AttachmentKind = "attachment") -> str:
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or _DEFAULT_TYPES[kind]


def pick_file(
    path: Union[str, Path],
    kind: AttachmentKind = "attachment",
    max_bytes: Optional[int] = None,
) -> Attachment:
    """Validate a file on disk and describe it as an Attachment."""
    file_path = Path(path)
    limit = settings.max_attachment_bytes if max_bytes is None else max_bytes

    if not file_path.is_file():
        raise AttachmentError(f"Arquivo não encontrado: {file_path.name}")

    size = file_path.stat().st_size
    if size == 0:
        raise AttachmentError("O arquivo selecionado está vazio.")
    if size > limit:
        raise AttachmentError(
            f"Arquivo muito grande. O tamanho máximo é {format_file_size(limit)}."
        )

    mime_type = guess_mime_type(file_path, kind)
    if kind == "image" and not mime_type.startswith("image/"):
        raise AttachmentError("O arquivo selecionado não é uma imagem.")

    attachment = Attachment(
        id=uuid.uuid4().hex,
        name=file_path.name,
        type=mime_type,
        size=size,
        path=str(file_path),
    )
    logger.debug(
        "Picked %s (%s, %s)", kind, attachment.type, format_file_size(attachment.size)
    )
    return attachment


def build_multipart(
    attachment: Attachment,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> Tuple[str, bytes, str]:
    """(filename, content, content_type) tuple for an httpx ``files`` entry."""
    content = Path(attachment.path).read_bytes()
    return (filename or attachment.name, content, content_type or attachment.type)
