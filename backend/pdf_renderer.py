"""Turn PDF bytes into text or page images for text-only LLMs."""
from dataclasses import dataclass, field
from typing import List
import cv2
import fitz  # PyMuPDF
import numpy as np
from loguru import logger

from backend.config import get_render_quality_settings
from backend.exceptions import DocumentRenderError


@dataclass(frozen=True)
class PDFInspection:
    page_count: int
    text_extractability_score: float
    requires_ocr: bool


@dataclass(frozen=True)
class RenderedDocument:
    inspection: PDFInspection
    text: str = ""
    images: List[bytes] = field(default_factory=list)


def _open(data: bytes) -> fitz.Document:
    try:
        return fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise DocumentRenderError(f"Could not open PDF: {e}") from e


def _inspect(doc: fitz.Document) -> PDFInspection:
    page_count = len(doc)
    text = doc[0].get_text() if page_count else ""
    score = min(1.0, len(text.strip()) / 1000)
    return PDFInspection(
        page_count=page_count,
        text_extractability_score=score,
        requires_ocr=score < 0.3,
    )


def estimate_skew(gray: np.ndarray) -> float:
    """Tilt of the text baselines in degrees, 0.0 when no line segments are found."""
    segments = cv2.HoughLinesP(
        cv2.Canny(gray, 50, 150, apertureSize=3),
        1, np.pi / 180, threshold=100, minLineLength=100, maxLineGap=10
    )
    if segments is None:
        return 0.0

    x1, y1, x2, y2 = segments.reshape(-1, 4).T.astype(np.float64)
    angles = np.degrees(np.arctan2(y2 - y1, x2 - x1))
    # Vertical rules and table borders say nothing about baseline tilt
    angles = angles[(x2 != x1) & (np.abs(angles) < 45)]
    return float(np.median(angles)) if angles.size else 0.0


def deskew(img: np.ndarray, angle: float) -> np.ndarray:
    """Rotate a page by `angle` degrees onto a white canvas large enough to hold it."""
    h, w = img.shape[:2]
    matrix = cv2.getRotationMatrix2D((w / 2, h / 2), angle, 1.0)

    corners = np.array([[0, 0, 1], [w, 0, 1], [0, h, 1], [w, h, 1]], dtype=np.float64)
    moved = corners @ matrix.T
    low, high = moved.min(axis=0), moved.max(axis=0)
    matrix[:, 2] -= low
    size = tuple(int(np.ceil(v)) for v in high - low)

    white = (255,) * img.shape[2] if img.ndim == 3 else 255
    return cv2.warpAffine(img, matrix, size, borderMode=cv2.BORDER_CONSTANT, borderValue=white)


def preprocess_page(img: np.ndarray, min_dimension: int = 1024) -> np.ndarray:
    """
    Light cleanup of a scanned page before it goes to a vision model.

    Deskews past 1 degree, upscales small pages, and mildly boosts contrast.
    Color is kept.
    """
    gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY) if img.ndim == 3 else img
    angle = estimate_skew(gray)
    if abs(angle) > 1.0:
        img = deskew(img, angle)

    h, w = img.shape[:2]
    if max(h, w) < min_dimension:
        scale = min_dimension / max(h, w)
        img = cv2.resize(img, (int(w * scale), int(h * scale)), interpolation=cv2.INTER_CUBIC)

    if (int(gray.max()) - int(gray.min())) / 255.0 < 0.2:
        img = cv2.convertScaleAbs(img, alpha=1.1, beta=5)

    return img


def _page_to_png(page: fitz.Page, matrix_scale: float) -> bytes:
    pix = page.get_pixmap(matrix=fitz.Matrix(matrix_scale, matrix_scale))
    img = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.h, pix.w, pix.n)
    if pix.n == 4:
        img = cv2.cvtColor(img, cv2.COLOR_RGBA2BGR)
    elif pix.n == 3:
        img = cv2.cvtColor(img, cv2.COLOR_RGB2BGR)

    img = preprocess_page(img)
    ok, encoded = cv2.imencode(".png", img)
    if not ok:
        raise DocumentRenderError("Failed to encode rendered page")
    return encoded.tobytes()


def render_pdf(data: bytes, quality: str = "base", max_pages: int = 10) -> RenderedDocument:
    """Return the text layer of a PDF, or PNG renders of its pages when it has none."""
    with _open(data) as doc:
        inspection = _inspect(doc)
        pages = [doc[i] for i in range(min(inspection.page_count, max_pages))]

        if not inspection.requires_ocr:
            text = "\n\n".join(page.get_text().strip() for page in pages)
            logger.info(f"PDF has a text layer: {inspection.page_count} pages, {len(text)} chars")
            return RenderedDocument(inspection=inspection, text=text)

        matrix_scale = get_render_quality_settings(quality)["matrix_scale"]
        logger.info(f"Rendering {len(pages)} scanned pages at {matrix_scale}x")
        images = [_page_to_png(page, matrix_scale) for page in pages]
        return RenderedDocument(inspection=inspection, images=images)
