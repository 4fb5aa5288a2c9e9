import io

import fitz
import pytest
from PIL import Image

from invoice_review.entities import Entity
from invoice_review.entities.entity import Vertex
from invoice_review.review import CoordinateMapper, HighlightNavigator, PixelRect, scroll_target
from invoice_review.services import Document, PageRenderer, PageSize
from invoice_review.utils.exceptions import CorruptedFileError, RenderError

from conftest import entity

UNIT_SQUARE = [Vertex(0, 0), Vertex(1, 0), Vertex(1, 1), Vertex(0, 1)]


def png_bytes(width, height):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


def pdf_bytes(*sizes):
    pdf = fitz.open()
    for width, height in sizes:
        pdf.new_page(width=width, height=height)
    data = pdf.tobytes()
    pdf.close()
    return data


# -----------------------------------------------------------------------------
# Coordinate mapping
# -----------------------------------------------------------------------------

def test_unit_square_fills_container():
    assert CoordinateMapper().map_to_pixels(UNIT_SQUARE, 800, 600) == PixelRect(0, 0, 800, 600)


def test_rotated_polygon_maps_to_bounding_box():
    diamond = [Vertex(0.5, 0.1), Vertex(0.9, 0.5), Vertex(0.5, 0.9), Vertex(0.1, 0.5)]
    rect = CoordinateMapper().map_to_pixels(diamond, 100, 200)
    assert rect.left == pytest.approx(10)
    assert rect.top == pytest.approx(20)
    assert rect.width == pytest.approx(80)
    assert rect.height == pytest.approx(160)


@pytest.mark.parametrize("vertices", [[], UNIT_SQUARE[:3], UNIT_SQUARE + [Vertex(0.5, 0.5)]])
def test_requires_exactly_four_vertices(vertices):
    assert CoordinateMapper().map_to_pixels(vertices, 800, 600) is None


def test_no_highlight_for_other_pages():
    e = Entity.from_dict(entity("1", "supplier_name", "Acme", page=1, vertices=[(0, 0), (1, 0), (1, 1), (0, 1)]))
    mapper = CoordinateMapper()
    size = PageSize(2, 800, 600)

    assert mapper.highlight_for(e, 1, size) is None
    assert mapper.highlight_for(e, 2, size) == PixelRect(0, 0, 800, 600)


def test_scroll_target_centers_rect():
    assert scroll_target(PixelRect(0, 900, 100, 100), viewport_height=600) == 650


# -----------------------------------------------------------------------------
# Page geometry
# -----------------------------------------------------------------------------

def test_image_page_size():
    renderer = PageRenderer()
    document = Document(png_bytes(320, 240), "image/png", "scan.png")

    assert renderer.page_count(document) == 1
    assert renderer.page_size(document, 1) == PageSize(1, 320.0, 240.0)
    with pytest.raises(RenderError):
        renderer.page_size(document, 2)


def test_pdf_page_size_scales_with_dpi():
    document = Document(pdf_bytes((612, 792), (300, 400)), "application/pdf", "inv.pdf")

    assert PageRenderer(dpi=72).page_count(document) == 2
    assert PageRenderer(dpi=72).page_size(document, 2) == PageSize(2, 300.0, 400.0)
    size = PageRenderer(dpi=144).page_size(document, 1)
    assert (size.width, size.height) == pytest.approx((1224.0, 1584.0))


@pytest.mark.parametrize("mime_type", ["application/pdf", "image/png"])
def test_corrupted_document(mime_type):
    with pytest.raises(CorruptedFileError):
        PageRenderer().page_size(Document(b"garbage", mime_type, "bad"), 1)


def test_page_numbers_start_at_one():
    with pytest.raises(RenderError):
        PageRenderer().page_size(Document(png_bytes(10, 10), "image/png"), 0)


# -----------------------------------------------------------------------------
# Navigation
# -----------------------------------------------------------------------------

class DeferredRenderer:
    """Holds render callbacks until ``finish`` is called."""

    def __init__(self, size):
        self.size = size
        self.pending = []

    def render(self, document, page_number, on_rendered):
        self.pending.append((page_number, on_rendered))

    def finish(self):
        for page_number, callback in self.pending:
            callback(PageSize(page_number, *self.size))
        self.pending = []


def test_scroll_waits_for_render_completion():
    renderer = DeferredRenderer((1000, 2000))
    navigator = HighlightNavigator(renderer, Document(b"", "application/pdf"), viewport_height=500)
    target = Entity.from_dict(entity(
        "6", "total_amount", "$120.00", page=1,
        vertices=[(0.1, 0.5), (0.3, 0.5), (0.3, 0.6), (0.1, 0.6)],
    ))
    scrolls = []

    navigator.focus(target, scrolls.append)
    assert navigator.current_page == 2
    assert scrolls == []

    renderer.finish()
    rect = navigator.highlight
    assert (rect.left, rect.top, rect.width, rect.height) == pytest.approx((100, 1000, 200, 200))
    assert scrolls == [pytest.approx(850)]


def test_no_scroll_without_bounding_box():
    renderer = DeferredRenderer((1000, 2000))
    navigator = HighlightNavigator(renderer, Document(b"", "application/pdf"), viewport_height=500)
    scrolls = []

    navigator.focus(Entity.from_dict(entity("1", "supplier_name", "Acme")), scrolls.append)
    renderer.finish()

    assert navigator.current_page == 1
    assert scrolls == []
