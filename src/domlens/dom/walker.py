"""
Walk a document and produce the serializable node map.

For every element the walker consults the visibility classifier, then the top-element resolver
and the interactivity classifier, then decides on a highlight index; it then descends into shadow
roots, light children and same-origin iframe documents, passing down whether an ancestor already
owns a highlight. Nodes that add nothing (empty text, script/style content, off-screen empty
boxes, decorative empty anchors) are dropped without leaving a reference behind.
"""

import time
from logging import getLogger
from typing import NamedTuple

from domlens.browser.base import Viewport
from domlens.browser.cdp.types import DomSnapshot
from domlens.dom.geometry import GeometryCache
from domlens.dom.interactivity import is_interactive_candidate, is_interactive_element
from domlens.dom.live import LiveDocument, LiveNode, load_live_document
from domlens.dom.overlay import HIGHLIGHT_CONTAINER_ID
from domlens.dom.resolver import handle_highlighting, is_menu_container, is_top_element
from domlens.dom.shapes import Rect
from domlens.dom.views import DomTree, DomTreeOptions, ElementRecord, HighlightTarget, TextRecord
from domlens.dom.visibility import (
    ViewportWindow,
    has_rendered_size,
    is_element_visible,
    is_text_visible,
)


logger = getLogger(__name__)


ALWAYS_ACCEPTED_TAGS = frozenset(
    {"body", "div", "main", "article", "section", "nav", "header", "footer"}
)
DENIED_TAGS = frozenset({"svg", "script", "style", "link", "meta", "noscript", "template"})

# fixed/sticky boxes are usually toolbars and headers: small but important
_PINNED_POSITIONS = ("fixed", "sticky")


def is_element_accepted(element: LiveNode) -> bool:
    tag_name = element.tag_name
    if not tag_name:
        return False
    if tag_name in ALWAYS_ACCEPTED_TAGS:
        return True
    return tag_name not in DENIED_TAGS


def is_rich_text_root(element: LiveNode) -> bool:
    """Content-editable regions, including TinyMCE's editor bodies."""
    return (
        element.is_content_editable
        or element.get_attribute("contenteditable") == "true"
        or element.get_attribute("id") == "tinymce"
        or "mce-content-body" in element.class_list
        or (
            element.tag_name == "body"
            and (element.get_attribute("data-id") or "").startswith("mce_")
        )
    )


def _px(value: str | None) -> float:
    if not value:
        return 0
    try:
        return float(value.removesuffix("px"))
    except ValueError:
        return 0


class _Visit(NamedTuple):
    node: LiveNode | None
    frame: LiveNode | None
    is_parent_highlighted: bool
    parent: ElementRecord | None


class _Finalize(NamedTuple):
    node: LiveNode
    record: ElementRecord
    parent: ElementRecord | None


def _element_position(element: LiveNode) -> int:
    """1-based position among same-name siblings, or 0 when the name is unique."""
    parent = element.parent_element
    if parent is None:
        return 0

    siblings = [c for c in parent.element_children if c.node_name == element.node_name]
    if len(siblings) == 1:
        return 0
    return siblings.index(element) + 1


class DomTreeBuilder:
    """
    Single-use builder holding the state of one walk: the node map, the ID and highlight
    counters, and memoized XPaths and frame offsets.
    """

    def __init__(
        self, document: LiveDocument, options: DomTreeOptions, cache: GeometryCache
    ) -> None:
        self._document = document
        self._options = options
        self._cache = cache
        self._window = ViewportWindow(
            width=document.viewport.width,
            height=document.viewport.height,
            expansion=options.viewport_expansion,
        )

        self._map: dict[str, ElementRecord | TextRecord] = {}
        self._next_id = 0
        self._next_highlight_index = 0
        self._targets: list[HighlightTarget] = []
        self._xpaths: dict[LiveNode, str] = {}
        self._frame_offsets: dict[LiveNode, tuple[float, float]] = {}
        self._root_id: str | None = None

    def build(self) -> DomTree:
        start = time.perf_counter()

        body = self._document.body
        root_id = self._walk(body) if body is not None else None
        if root_id is None:
            logger.warning("Document %s has no <body>, returning an empty tree", self._document)

        tree = DomTree(root_id=root_id, map=self._map, highlight_targets=self._targets)

        if self._options.debug_mode:
            logger.debug(
                "Built DOM tree: %d nodes, %d highlighted, %d cached geometry entries "
                "(%d hits / %d misses) in %.1fms",
                len(self._map),
                self._next_highlight_index,
                len(self._cache),
                self._cache.hits,
                self._cache.misses,
                (time.perf_counter() - start) * 1000,
            )
        return tree

    def _store(self, record: ElementRecord | TextRecord) -> str:
        node_id = str(self._next_id)
        self._next_id += 1
        self._map[node_id] = record
        return node_id

    def _allocate_highlight_index(self) -> int:
        index = self._next_highlight_index
        self._next_highlight_index += 1
        return index

    def _xpath(self, element: LiveNode) -> str:
        if (xpath := self._xpaths.get(element)) is not None:
            return xpath

        segments: list[str] = []
        current: LiveNode | None = element
        # stops at the owning document or shadow root
        while current is not None and current.is_element:
            position = _element_position(current)
            segments.insert(0, f"{current.tag_name}[{position}]" if position else current.tag_name)
            current = current.parent

        xpath = "/".join(segments)
        self._xpaths[element] = xpath
        return xpath

    def _frame_offset(self, frame: LiveNode | None) -> tuple[float, float]:
        """Top-level viewport position of the content box of ``frame`` (0, 0 for the page)."""
        if frame is None:
            return (0, 0)
        if (offset := self._frame_offsets.get(frame)) is not None:
            return offset

        parent_x, parent_y = self._frame_offset(frame.document.owner_frame)
        rect = self._cache.get_rect(frame) or Rect.empty()
        styles = self._cache.get_style(frame)
        inset_x = _px(styles.get("border-left-width")) + _px(styles.get("padding-left"))
        inset_y = _px(styles.get("border-top-width")) + _px(styles.get("padding-top"))
        offset = (parent_x + rect.x + inset_x, parent_y + rect.y + inset_y)
        self._frame_offsets[frame] = offset
        return offset

    def _record_target(self, element: LiveNode, index: int, frame: LiveNode | None) -> None:
        offset_x, offset_y = self._frame_offset(frame)
        rect = self._cache.get_rect(element) or Rect.empty()
        self._targets.append(
            HighlightTarget(
                index=index,
                tag_name=element.tag_name,
                backend_node_id=element.backend_node_id,
                frame_id=element.document.frame_id,
                is_main_frame=element.document.is_main,
                rect=rect.translate(offset_x, offset_y),
            )
        )

    def _is_pruned_early(self, element: LiveNode) -> bool:
        """Cheap pre-recursion reject of empty boxes that lie outside the expanded viewport."""
        if self._window.is_unlimited or element.shadow_root is not None:
            return False

        if (rect := self._cache.get_rect(element)) is None:
            return True
        if self._cache.get_style(element).get("position") in _PINNED_POSITIONS:
            return False
        return not has_rendered_size(element, self._cache) and not self._window.overlaps(rect)

    def _is_empty_anchor(self, element: LiveNode, record: ElementRecord) -> bool:
        if record.tag_name != "a" or record.children or record.attributes.get("href"):
            return False
        rect = self._cache.get_rect(element)
        has_size = (rect is not None and rect.has_area) or has_rendered_size(element, self._cache)
        return not has_size

    def _build_text(self, text_node: LiveNode) -> str | None:
        text = text_node.node_value.strip()
        if not text:
            return None

        parent = text_node.parent_element
        if parent is None or parent.tag_name == "script":
            return None

        return self._store(
            TextRecord(text=text, is_visible=is_text_visible(text_node, self._cache, self._window))
        )

    def _attach(self, node_id: str | None, parent: ElementRecord | None) -> None:
        if node_id is None:
            return
        if parent is None:
            self._root_id = node_id
        else:
            parent.children.append(node_id)

    def _push_children(
        self,
        stack: list[_Visit | _Finalize],
        children: list[LiveNode],
        frame: LiveNode | None,
        is_parent_highlighted: bool,
        parent: ElementRecord,
    ) -> None:
        # reversed so children pop in document order
        stack.extend(
            _Visit(child, frame, is_parent_highlighted, parent) for child in reversed(children)
        )

    def _walk(self, root: LiveNode) -> str | None:
        """
        Depth-first walk with an explicit stack, so nesting depth is bounded by memory rather
        than the interpreter's recursion limit. Highlight indices are handed out when an element
        is visited (pre-order); IDs when it is finalized after its subtree (post-order).
        """
        stack: list[_Visit | _Finalize] = [_Visit(root, None, False, None)]
        while stack:
            match stack.pop():
                case _Visit(node, frame, is_parent_highlighted, parent):
                    self._visit(stack, node, frame, is_parent_highlighted, parent)
                case _Finalize(node, record, parent):
                    if not self._is_empty_anchor(node, record):
                        self._attach(self._store(record), parent)
        return self._root_id

    def _visit(
        self,
        stack: list[_Visit | _Finalize],
        node: LiveNode | None,
        frame: LiveNode | None,
        is_parent_highlighted: bool,
        parent: ElementRecord | None,
    ) -> None:
        if node is None or node.get_attribute("id") == HIGHLIGHT_CONTAINER_ID:
            return

        if not (node.is_element or node.is_text):
            return

        if node is self._document.body:
            body_record = ElementRecord(tag_name="body", xpath="/body")
            stack.append(_Finalize(node, body_record, parent))
            self._push_children(stack, node.child_nodes, frame, False, body_record)
            return

        if node.is_text:
            self._attach(self._build_text(node), parent)
            return

        if not is_element_accepted(node) or self._is_pruned_early(node):
            return

        record = ElementRecord(tag_name=node.tag_name, xpath=self._xpath(node))
        if is_interactive_candidate(node) or node.tag_name in ("iframe", "body"):
            record.attributes = dict(node.attributes)

        node_was_highlighted = False
        record.is_visible = is_element_visible(node, self._cache)
        if record.is_visible:
            record.is_top_element = is_top_element(node, self._cache, self._window)
            record.is_interactive = is_interactive_element(node, self._cache)
            if record.is_top_element or is_menu_container(node):
                node_was_highlighted = handle_highlighting(
                    record,
                    node,
                    is_parent_highlighted,
                    cache=self._cache,
                    window=self._window,
                    next_index=self._allocate_highlight_index,
                )
                if record.highlight_index is not None:
                    self._record_target(node, record.highlight_index, frame)

        stack.append(_Finalize(node, record, parent))

        if node.tag_name == "iframe":
            content = node.content_document
            if content is None or content.root is None:
                logger.warning(
                    "Unable to access iframe content (src=%s), skipping it",
                    node.get_attribute("src"),
                )
            else:
                self._push_children(stack, content.root.child_nodes, node, False, record)
        elif is_rich_text_root(node):
            # the editable region is one target; its inner markup must not re-trigger highlights
            self._push_children(stack, node.child_nodes, frame, node_was_highlighted, record)
        else:
            passed_down = is_parent_highlighted or node_was_highlighted
            # light children are pushed first so the shadow tree pops (and is listed) before them
            self._push_children(stack, node.child_nodes, frame, passed_down, record)
            if node.shadow_root is not None:
                record.shadow_root = True
                self._push_children(
                    stack, node.shadow_root.child_nodes, frame, passed_down, record
                )


def build_dom_tree(
    snapshot: DomSnapshot, viewport: Viewport, options: DomTreeOptions | None = None
) -> DomTree:
    """
    Build the interaction snapshot of the page captured in ``snapshot``.

    ``viewport`` is the top-level layout viewport at capture time. The geometry cache lives only
    for the duration of this call.
    """
    options = options or DomTreeOptions()
    document = load_live_document(snapshot, viewport)
    with GeometryCache() as cache:
        return DomTreeBuilder(document, options, cache).build()
