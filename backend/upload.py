"""Upload validation and data URL encoding."""
import base64
import binascii
from dataclasses import dataclass
from typing import Optional

from backend.config import settings

PDF_CONTENT_TYPES = frozenset({"application/pdf", "application/x-pdf"})

NO_FILE = "No file provided"
INVALID_TYPE = "Invalid file type. Please upload a PDF file."


@dataclass(frozen=True)
class UploadedDocument:
    """A file received in one request. Never persisted."""
    content_type: Optional[str]
    size: int
    content: bytes


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    reason: Optional[str] = None


def validate_upload(
    document: Optional[UploadedDocument],
    max_size: Optional[int] = None,
    allowed_types: Optional[frozenset] = None,
) -> ValidationOutcome:
    """
    Check an upload before it is sent anywhere.

    Rules are applied in order and the first failure wins:
    missing file, non-PDF content type, size above the ceiling.
    """
    if max_size is None:
        max_size = settings.max_file_size
    if allowed_types is None:
        allowed_types = frozenset(settings.allowed_content_types) or PDF_CONTENT_TYPES

    if document is None:
        return ValidationOutcome(valid=False, reason=NO_FILE)

    if document.content_type not in allowed_types:
        return ValidationOutcome(valid=False, reason=INVALID_TYPE)

    if document.size > max_size:
        return ValidationOutcome(
            valid=False,
            reason=f"File too large. Maximum size is {max_size // (1024 * 1024)}MB."
        )

    return ValidationOutcome(valid=True)


def encode_data_url(document: UploadedDocument) -> str:
    """Encode the document as `data:<content-type>;base64,<body>`."""
    body = base64.b64encode(document.content).decode("ascii")
    return f"data:{document.content_type};base64,{body}"


def parse_data_url(data_url: str) -> tuple[str, bytes]:
    """Split a base64 data URL back into its MIME type and raw bytes."""
    if not data_url.startswith("data:"):
        raise ValueError("Not a data URL")

    header, sep, body = data_url[5:].partition(",")
    if not sep or not header.endswith(";base64"):
        raise ValueError("Data URL is not base64 encoded")

    mime_type = header[:-len(";base64")]
    try:
        return mime_type, base64.b64decode(body, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
