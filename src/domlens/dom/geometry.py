from types import TracebackType

from domlens.dom.hit_test import PointIndex
from domlens.dom.live import LiveDocument, LiveNode
from domlens.dom.shapes import Rect


class GeometryCache:
    """
    Per-build memo of layout queries, keyed by node identity.

    Rects, client rects, offset sizes and computed styles are decoded from the snapshot the first
    time a node is asked about and served from memory afterwards; point indexes are built once
    per document. The cache is meant to live for exactly one build: use it as a context manager
    (or call :meth:`clear`) so that no node references survive the build.
    """

    def __init__(self) -> None:
        self._bounding_rects: dict[LiveNode, Rect | None] = {}
        self._client_rects: dict[LiveNode, list[Rect]] = {}
        self._offset_sizes: dict[LiveNode, tuple[float, float]] = {}
        self._computed_styles: dict[LiveNode, dict[str, str]] = {}
        self._point_indexes: dict[LiveDocument, PointIndex] = {}
        self.hits = 0
        self.misses = 0

    def __enter__(self) -> "GeometryCache":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.clear()

    def __len__(self) -> int:
        return (
            len(self._bounding_rects)
            + len(self._client_rects)
            + len(self._offset_sizes)
            + len(self._computed_styles)
        )

    def clear(self) -> None:
        self._bounding_rects = {}
        self._client_rects = {}
        self._offset_sizes = {}
        self._computed_styles = {}
        self._point_indexes = {}

    def get_rect(self, node: LiveNode) -> Rect | None:
        """``getBoundingClientRect()``; unrendered elements get an empty rect at the origin."""
        if node in self._bounding_rects:
            self.hits += 1
            return self._bounding_rects[node]

        self.misses += 1
        rect: Rect | None = None
        if node.is_element or node.is_text:
            if node.layout_index is None:
                rect = Rect.empty()
            else:
                rect = node.document.layout_rect(node.layout_index)
        self._bounding_rects[node] = rect
        return rect

    def get_client_rects(self, node: LiveNode) -> list[Rect]:
        """``getClientRects()`` for elements, the line boxes of a text node's range for text."""
        if node in self._client_rects:
            self.hits += 1
            return self._client_rects[node]

        self.misses += 1
        rects: list[Rect] = []
        if node.layout_index is not None:
            if node.is_text:
                rects = node.document.layout_text_rects(node.layout_index)
            if not rects:
                rects = [node.document.layout_rect(node.layout_index)]
        self._client_rects[node] = rects
        return rects

    def get_offset_size(self, node: LiveNode) -> tuple[float, float]:
        """``(offsetWidth, offsetHeight)``; zero for anything without a layout box."""
        if node in self._offset_sizes:
            self.hits += 1
            return self._offset_sizes[node]

        self.misses += 1
        size: tuple[float, float] = (0, 0)
        if node.layout_index is not None:
            size = node.document.layout_offset_size(node.layout_index)
        self._offset_sizes[node] = size
        return size

    def get_style(self, node: LiveNode) -> dict[str, str]:
        """Computed styles of the node; empty when the node isn't rendered."""
        if node in self._computed_styles:
            self.hits += 1
            return self._computed_styles[node]

        self.misses += 1
        styles: dict[str, str] = {}
        if node.layout_index is not None:
            styles = node.document.layout_styles(node.layout_index)
        self._computed_styles[node] = styles
        return styles

    def get_point_index(self, document: LiveDocument) -> PointIndex:
        if (index := self._point_indexes.get(document)) is None:
            index = PointIndex(document)
            self._point_indexes[document] = index
        return index
