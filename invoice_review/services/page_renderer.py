"""
Page Renderer Module.

Reads page pixel dimensions from a stored document. Highlight placement
only needs the geometry of a page, so no page is rasterized here.

    - PDFs: PyMuPDF page rectangles, scaled from 72 DPI to the configured DPI
    - Images: Pillow frame sizes (multi-frame TIFFs are one page per frame)

Author: ML Engineering Team
"""

import io
from dataclasses import dataclass
from typing import Callable, Optional

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from config import get_config
from invoice_review.utils.logger import get_logger
from invoice_review.utils.exceptions import CorruptedFileError, RenderError

logger = get_logger(__name__)

# Native PDF resolution
PDF_POINTS_PER_INCH = 72.0


@dataclass(frozen=True)
class PageSize:
    """Pixel dimensions of one rendered page."""
    page_number: int
    width: float
    height: float


@dataclass(frozen=True)
class Document:
    """A stored document as the renderer sees it."""
    data: bytes
    mime_type: str
    name: str = ''

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == 'application/pdf'


class PageRenderer:
    """
    Page geometry provider.

    Attributes:
        dpi: Target resolution for PDF pages

    Example:
        >>> renderer = PageRenderer()
        >>> renderer.page_size(Document(data, "application/pdf"), 1)
        PageSize(page_number=1, width=612.0, height=792.0)
    """

    def __init__(self, dpi: Optional[float] = None) -> None:
        self.dpi = float(dpi or get_config("rendering.pdf_dpi", 72))

    def page_count(self, document: Document) -> int:
        if document.is_pdf:
            with self._open_pdf(document) as pdf:
                return pdf.page_count
        with self._open_image(document) as image:
            return getattr(image, 'n_frames', 1)

    def page_size(self, document: Document, page_number: int) -> PageSize:
        """
        Pixel size of a one-based page.

        Raises:
            CorruptedFileError: If the document cannot be opened.
            RenderError: If the page does not exist.
        """
        if page_number < 1:
            raise RenderError(page_number, "Page numbers start at 1")

        if document.is_pdf:
            zoom = self.dpi / PDF_POINTS_PER_INCH
            with self._open_pdf(document) as pdf:
                if page_number > pdf.page_count:
                    raise RenderError(page_number, f"Document has {pdf.page_count} page(s)")
                rect = pdf.load_page(page_number - 1).rect
                return PageSize(page_number, rect.width * zoom, rect.height * zoom)

        with self._open_image(document) as image:
            frames = getattr(image, 'n_frames', 1)
            if page_number > frames:
                raise RenderError(page_number, f"Image has {frames} frame(s)")
            image.seek(page_number - 1)
            width, height = image.size
            return PageSize(page_number, float(width), float(height))

    def render(
        self,
        document: Document,
        page_number: int,
        on_rendered: Callable[[PageSize], None]
    ) -> PageSize:
        """
        Render a page and signal completion.

        ``on_rendered`` is invoked with the page size once the page geometry
        is available, and never if rendering fails.
        """
        size = self.page_size(document, page_number)
        logger.debug(f"Rendered page {page_number} of {document.name or 'document'}")
        on_rendered(size)
        return size

    @staticmethod
    def _open_pdf(document: Document) -> fitz.Document:
        try:
            return fitz.open(stream=document.data, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise CorruptedFileError(document.name or 'document', str(e))

    @staticmethod
    def _open_image(document: Document) -> Image.Image:
        try:
            return Image.open(io.BytesIO(document.data))
        except (UnidentifiedImageError, OSError) as e:
            raise CorruptedFileError(document.name or 'document', str(e))
