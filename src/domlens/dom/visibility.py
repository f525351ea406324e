from dataclasses import dataclass

from domlens.dom.geometry import GeometryCache
from domlens.dom.live import LiveNode
from domlens.dom.shapes import Rect


UNLIMITED_EXPANSION = -1


@dataclass(frozen=True)
class ViewportWindow:
    """The viewport grown by ``expansion`` pixels on every side; -1 disables the check."""

    width: float
    height: float
    expansion: int = 0

    @property
    def is_unlimited(self) -> bool:
        return self.expansion == UNLIMITED_EXPANSION

    def overlaps(self, rect: Rect) -> bool:
        if self.is_unlimited:
            return True
        margin = self.expansion
        return not (
            rect.bottom < -margin
            or rect.top > self.height + margin
            or rect.right < -margin
            or rect.left > self.width + margin
        )


def _is_transparent(styles: dict[str, str]) -> bool:
    try:
        return float(styles.get("opacity", "1")) == 0
    except ValueError:
        return False


def check_visibility(element: LiveNode, cache: GeometryCache) -> bool:
    """
    ``element.checkVisibility({checkOpacity: true, checkVisibilityCSS: true})``: the element has
    a layout box, isn't ``visibility: hidden|collapse`` and neither it nor an ancestor is fully
    transparent.
    """
    if element.layout_index is None:
        return False

    if cache.get_style(element).get("visibility") in ("hidden", "collapse"):
        return False

    node: LiveNode | None = element
    while node is not None:
        if _is_transparent(cache.get_style(node)):
            return False
        node = node.parent_element if node.parent_element is not None else node.root_node.host
    return True


def is_element_visible(element: LiveNode, cache: GeometryCache) -> bool:
    width, height = cache.get_offset_size(element)
    styles = cache.get_style(element)
    return (
        width > 0
        and height > 0
        and styles.get("visibility") != "hidden"
        and styles.get("display") != "none"
    )


def has_rendered_size(element: LiveNode, cache: GeometryCache) -> bool:
    width, height = cache.get_offset_size(element)
    return width > 0 or height > 0


def is_text_visible(text_node: LiveNode, cache: GeometryCache, window: ViewportWindow) -> bool:
    parent = text_node.parent_element
    if window.is_unlimited:
        return parent is not None and check_visibility(parent, cache)

    rects = [rect for rect in cache.get_client_rects(text_node) if rect.has_area]
    if not rects or not any(window.overlaps(rect) for rect in rects):
        return False

    return parent is not None and check_visibility(parent, cache)


def is_in_expanded_viewport(
    element: LiveNode, cache: GeometryCache, window: ViewportWindow
) -> bool:
    if window.is_unlimited:
        return True

    rects = cache.get_client_rects(element)
    if not rects:
        rect = cache.get_rect(element)
        return rect is not None and rect.has_area and window.overlaps(rect)

    return any(rect.has_area and window.overlaps(rect) for rect in rects)
