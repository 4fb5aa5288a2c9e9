"""
Highlight Placement Module.

Maps normalized bounding polygons onto on-screen pixel rectangles and
scrolls the viewer to a selected field.

Author: ML Engineering Team
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from invoice_review.entities.entity import Anchored, Vertex
from invoice_review.services.page_renderer import Document, PageRenderer, PageSize
from invoice_review.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PixelRect:
    """Axis-aligned rectangle in container pixels."""
    left: float
    top: float
    width: float
    height: float

    @property
    def center_y(self) -> float:
        return self.top + self.height / 2


class CoordinateMapper:
    """
    Converts normalized vertices to pixel rectangles.

    Example:
        >>> square = [Vertex(0, 0), Vertex(1, 0), Vertex(1, 1), Vertex(0, 1)]
        >>> CoordinateMapper().map_to_pixels(square, 800, 600)
        PixelRect(left=0, top=0, width=800, height=600)
    """

    VERTEX_COUNT = 4

    def map_to_pixels(
        self,
        vertices: Sequence[Vertex],
        container_width: float,
        container_height: float
    ) -> Optional[PixelRect]:
        """
        Bounding box of the scaled vertices.

        Vertices need not be axis-aligned corners; the rectangle is the
        min/max over all four scaled points.

        Returns:
            PixelRect, or None unless exactly four vertices are given.
        """
        if len(vertices) != self.VERTEX_COUNT:
            return None

        xs = [v.x * container_width for v in vertices]
        ys = [v.y * container_height for v in vertices]
        left, top = min(xs), min(ys)
        return PixelRect(left=left, top=top, width=max(xs) - left, height=max(ys) - top)

    def highlight_for(
        self,
        item: Anchored,
        current_page: int,
        page_size: PageSize
    ) -> Optional[PixelRect]:
        """
        Highlight rectangle for an entity or line item on the displayed page.

        Returns None when the item lives on another page.
        """
        if item.ui_page != current_page:
            return None
        return self.map_to_pixels(item.normalized_vertices, page_size.width, page_size.height)


def scroll_target(rect: PixelRect, viewport_height: float) -> float:
    """Scroll offset that centers ``rect`` vertically in the viewport."""
    return rect.center_y - viewport_height / 2


class HighlightNavigator:
    """
    Brings a selected field into view.

    Selecting a field switches the viewer to the field's page. The scroll
    position is computed from the renderer's completion signal, so it is
    never computed against a page that is still rendering.

    Attributes:
        current_page: Page shown in the viewer
        viewport_height: Visible height of the viewer in pixels

    Example:
        >>> navigator = HighlightNavigator(renderer, document, viewport_height=600)
        >>> navigator.focus(entity, on_scroll=viewer.scroll_to)
    """

    def __init__(
        self,
        renderer: PageRenderer,
        document: Document,
        viewport_height: float,
        mapper: Optional[CoordinateMapper] = None
    ) -> None:
        self.renderer = renderer
        self.document = document
        self.viewport_height = viewport_height
        self.mapper = mapper or CoordinateMapper()
        self.current_page = 1
        self.highlight: Optional[PixelRect] = None

    def focus(self, item: Anchored, on_scroll: Callable[[float], None]) -> None:
        """
        Show ``item``'s page and scroll to its highlight once rendered.

        ``on_scroll`` receives the target offset; it is not called when the
        item has no usable bounding polygon.
        """
        self.current_page = item.ui_page

        def on_rendered(size: PageSize) -> None:
            self.highlight = self.mapper.highlight_for(item, self.current_page, size)
            if self.highlight is None:
                logger.debug(f"No highlight for item on page {item.ui_page}")
                return
            on_scroll(scroll_target(self.highlight, self.viewport_height))

        self.renderer.render(self.document, self.current_page, on_rendered)
