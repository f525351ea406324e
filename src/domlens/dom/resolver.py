import re
from collections.abc import Callable
from logging import getLogger
from typing import NamedTuple

from domlens.dom.geometry import GeometryCache
from domlens.dom.interactivity import is_interactive_element
from domlens.dom.live import LiveNode
from domlens.dom.views import ElementRecord
from domlens.dom.visibility import ViewportWindow, is_element_visible, is_in_expanded_viewport


logger = getLogger(__name__)


# inset (px) of the corner points checked when hit testing an element
TOP_ELEMENT_HIT_MARGIN = 5

# composite widgets highlighted even when hit testing lands on one of their items
MENU_CONTAINER_ROLES = {"menu", "menubar", "listbox"}

DISTINCT_INTERACTIVE_TAGS = {
    "a",
    "button",
    "input",
    "select",
    "textarea",
    "summary",
    "details",
    "label",
    "option",
}
DISTINCT_INTERACTIVE_ROLES = {
    "button",
    "link",
    "menuitem",
    "menuitemradio",
    "menuitemcheckbox",
    "radio",
    "checkbox",
    "tab",
    "switch",
    "slider",
    "spinbutton",
    "combobox",
    "searchbox",
    "textbox",
    "listbox",
    "option",
    "scrollbar",
}
TEST_ID_ATTRIBUTES = ("data-testid", "data-cy", "data-test")
COMMON_EVENT_ATTRIBUTES = (
    "onmousedown",
    "onmouseup",
    "onkeydown",
    "onkeyup",
    "onsubmit",
    "onchange",
    "oninput",
    "onfocus",
    "onblur",
)

_INTERACTIVE_CLASS_PATTERN = re.compile(r"\b(btn|clickable|menu|item|entry|link)\b", re.IGNORECASE)
_KNOWN_CONTAINER_CLASSES = {"menu", "dropdown", "list", "toolbar"}


def is_menu_container(element: LiveNode) -> bool:
    return element.get_attribute("role") in MENU_CONTAINER_ROLES


def _is_known_container(element: LiveNode) -> bool:
    # button, a, [role="button"], .menu, .dropdown, .list, .toolbar
    return (
        element.tag_name in ("button", "a")
        or element.get_attribute("role") == "button"
        or bool(_KNOWN_CONTAINER_CLASSES.intersection(element.class_list))
    )


def _contains(ancestor: LiveNode, hit: LiveNode, stop: LiveNode | None) -> bool:
    current: LiveNode | None = hit
    while current is not None and current is not stop:
        if current is ancestor:
            return True
        current = current.parent_element
    return False


def is_top_element(element: LiveNode, cache: GeometryCache, window: ViewportWindow) -> bool:
    """
    Whether hit testing at the element's position lands on the element (or something inside it),
    i.e. it isn't covered by an overlay.
    """
    if window.is_unlimited:
        return True

    rects = cache.get_client_rects(element)
    if not rects or not any(rect.has_area and window.overlaps(rect) for rect in rects):
        return False

    document = element.document
    if not document.is_main:
        return True

    rect = rects[len(rects) // 2]
    root = element.root_node
    if root.is_shadow_root:
        center_x, center_y = rect.center
        try:
            top = cache.get_point_index(document).element_from_point(center_x, center_y, root)
        except Exception:
            logger.debug("Shadow root hit test failed for %s", element, exc_info=True)
            return True
        return top is not None and _contains(element, top, stop=None)

    check_points = [
        rect.center,
        (rect.left + TOP_ELEMENT_HIT_MARGIN, rect.top + TOP_ELEMENT_HIT_MARGIN),
        (rect.right - TOP_ELEMENT_HIT_MARGIN, rect.bottom - TOP_ELEMENT_HIT_MARGIN),
    ]
    document_element = document.document_element
    for x, y in check_points:
        try:
            top = cache.get_point_index(document).element_from_point(x, y, root)
        except Exception:
            logger.debug("Hit test failed for %s at (%s, %s)", element, x, y, exc_info=True)
            return True
        if top is not None and _contains(element, top, stop=document_element):
            return True
    return False


def is_heuristically_interactive(element: LiveNode, cache: GeometryCache) -> bool:
    """
    Fallback for nested elements the strict rules miss: something that looks clickable, has
    visible content and sits inside a known interactive container.
    """
    if not element.is_element or not is_element_visible(element, cache):
        return False

    has_interactive_attributes = element.is_clickable or any(
        element.has_attribute(attr) for attr in ("role", "tabindex", "onclick")
    )
    has_interactive_class = bool(_INTERACTIVE_CLASS_PATTERN.search(element.class_name))
    is_in_known_container = element.closest(_is_known_container) is not None
    has_visible_children = any(
        is_element_visible(child, cache) for child in element.element_children
    )
    parent = element.parent_element
    is_parent_body = parent is not None and parent is element.document.top_document.body

    return (
        (
            is_interactive_element(element, cache)
            or has_interactive_attributes
            or has_interactive_class
        )
        and has_visible_children
        and is_in_known_container
        and not is_parent_body
    )


class DistinctInteractionRule(NamedTuple):
    name: str
    check: Callable[[LiveNode, GeometryCache], bool]


DISTINCT_INTERACTION_RULES: tuple[DistinctInteractionRule, ...] = (
    DistinctInteractionRule("iframe", lambda e, _: e.tag_name == "iframe"),
    DistinctInteractionRule(
        "interactive-tag", lambda e, _: e.tag_name in DISTINCT_INTERACTIVE_TAGS
    ),
    DistinctInteractionRule(
        "interactive-role", lambda e, _: e.get_attribute("role") in DISTINCT_INTERACTIVE_ROLES
    ),
    DistinctInteractionRule(
        "content-editable",
        lambda e, _: e.is_editing_host or e.get_attribute("contenteditable") == "true",
    ),
    DistinctInteractionRule(
        "test-id", lambda e, _: any(e.has_attribute(a) for a in TEST_ID_ATTRIBUTES)
    ),
    DistinctInteractionRule(
        "click-handler", lambda e, _: e.has_attribute("onclick") or e.is_clickable
    ),
    DistinctInteractionRule(
        "event-handler", lambda e, _: any(e.has_attribute(a) for a in COMMON_EVENT_ATTRIBUTES)
    ),
    DistinctInteractionRule("heuristic", is_heuristically_interactive),
)


def is_element_distinct_interaction(element: LiveNode, cache: GeometryCache) -> bool:
    """
    Whether an element nested under an already-highlighted ancestor deserves its own index.
    Anything else is treated as decoration inside the ancestor's clickable region.
    """
    if not element.is_element:
        return False
    return any(rule.check(element, cache) for rule in DISTINCT_INTERACTION_RULES)


def handle_highlighting(
    record: ElementRecord,
    element: LiveNode,
    is_parent_highlighted: bool,
    *,
    cache: GeometryCache,
    window: ViewportWindow,
    next_index: Callable[[], int],
) -> bool:
    """
    Assign the next highlight index to ``record`` when it earns one.

    Returns whether the element became a new highlight root, which callers OR into the flag
    passed down to its children.
    """
    if not record.is_interactive:
        return False

    if is_parent_highlighted and not is_element_distinct_interaction(element, cache):
        return False

    record.is_in_viewport = is_in_expanded_viewport(element, cache, window)
    if record.is_in_viewport or window.is_unlimited:
        record.highlight_index = next_index()
        return True
    return False
