# pyright: reportTypedDictNotRequiredAccess=false
"""
Rebuild a walkable document model from a CDP ``DOMSnapshot.captureSnapshot`` payload.

The snapshot is a point-in-time copy of every frame the page process can see, flattened into
parallel arrays. The classes here put those arrays back into a tree that offers the subset of
the DOM API the snapshot engine needs (parent/child links, open shadow roots, iframe content
documents, attributes, inherited editable/inert state). Geometry and computed styles are left
in their raw form and decoded on demand by :class:`domlens.dom.geometry.GeometryCache`.
"""

from collections import defaultdict
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from logging import getLogger

from domlens.browser.base import Viewport
from domlens.browser.cdp.types import (
    DocumentSnapshot,
    DomSnapshot,
    NodeTreeSnapshot,
    NodeType,
    RareStringData,
)
from domlens.dom.shapes import Rect


logger = getLogger(__name__)


# CSS properties requested in the DOMSnapshot. Visibility, interactivity and hit testing only
# read these, so keeping the list short keeps the snapshot payload small.
QUERIED_STYLES = [
    "display",
    "visibility",
    "opacity",
    "cursor",
    "position",
    "pointer-events",
    "border-left-width",
    "border-top-width",
    "padding-left",
    "padding-top",
]

_EDITABLE_VALUES = ("", "true", "plaintext-only")


@dataclass(eq=False)
class LiveNode:
    document: "LiveDocument"
    node_index: int
    node_type: NodeType
    node_name: str
    backend_node_id: int = 0
    node_value: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    parent: "LiveNode | None" = None
    child_nodes: list["LiveNode"] = field(default_factory=list)
    # only open shadow roots are reachable, the same as element.shadowRoot
    shadow_root: "LiveNode | None" = None
    host: "LiveNode | None" = None
    content_document: "LiveDocument | None" = None
    is_clickable: bool = False
    layout_index: int | None = None

    def __repr__(self) -> str:
        return f"LiveNode({self.node_name!r}, index={self.node_index})"

    @property
    def is_element(self) -> bool:
        return self.node_type == NodeType.ELEMENT_NODE

    @property
    def is_text(self) -> bool:
        return self.node_type == NodeType.TEXT_NODE

    @property
    def is_shadow_root(self) -> bool:
        return self.node_type == NodeType.DOCUMENT_FRAGMENT_NODE and self.host is not None

    @property
    def tag_name(self) -> str:
        return self.node_name.lower() if self.is_element else ""

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    @property
    def class_name(self) -> str:
        return self.attributes.get("class", "")

    @property
    def class_list(self) -> list[str]:
        return self.class_name.split()

    @property
    def parent_element(self) -> "LiveNode | None":
        if self.parent is not None and self.parent.is_element:
            return self.parent
        return None

    @property
    def element_children(self) -> list["LiveNode"]:
        return [child for child in self.child_nodes if child.is_element]

    @property
    def root_node(self) -> "LiveNode":
        """The document node or shadow root this node belongs to (``getRootNode()``)."""
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def closest(self, predicate: Callable[["LiveNode"], bool]) -> "LiveNode | None":
        node: LiveNode | None = self
        while node is not None:
            if predicate(node):
                return node
            node = node.parent_element
        return None

    @property
    def is_content_editable(self) -> bool:
        node = self if self.is_element else self.parent_element
        while node is not None:
            value = node.get_attribute("contenteditable")
            if value is not None:
                value = value.strip().lower()
                if value in _EDITABLE_VALUES:
                    return True
                if value == "false":
                    return False
            node = node.parent_element
        return False

    @property
    def is_editing_host(self) -> bool:
        """The outermost element of an editable region."""
        if not self.is_element or not self.is_content_editable:
            return False
        parent = self.parent_element
        return parent is None or not parent.is_content_editable

    @property
    def is_inert(self) -> bool:
        return self.closest(lambda n: n.has_attribute("inert")) is not None


@dataclass(eq=False)
class LiveDocument:
    frame_id: str
    url: str
    viewport: Viewport
    raw: DocumentSnapshot
    strings: list[str]
    queried_styles: list[str]
    scroll_x: float = 0
    scroll_y: float = 0
    root: LiveNode | None = None
    owner_frame: LiveNode | None = None
    nodes: list[LiveNode | None] = field(default_factory=list)
    # nodes without a LiveNode (pseudo elements, closed/user-agent shadow content) that still
    # paint: hits on them count as hits on their nearest reachable ancestor
    hit_proxies: dict[int, LiveNode] = field(default_factory=dict)
    text_boxes: dict[int, list[list[float]]] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"LiveDocument(frame_id={self.frame_id!r}, url={self.url!r})"

    @property
    def is_main(self) -> bool:
        return self.owner_frame is None

    @property
    def top_document(self) -> "LiveDocument":
        document = self
        while document.owner_frame is not None:
            document = document.owner_frame.document
        return document

    @property
    def document_element(self) -> LiveNode | None:
        if self.root is None:
            return None
        return next((c for c in self.root.child_nodes if c.is_element), None)

    @property
    def body(self) -> LiveNode | None:
        if (html := self.document_element) is None:
            return None
        return next((c for c in html.element_children if c.tag_name == "body"), None)

    def layout_rect(self, layout_idx: int) -> Rect:
        """Border box of a layout entry relative to this document's viewport."""
        bounds = self.raw["layout"]["bounds"][layout_idx]
        return Rect.from_cdp(bounds).translate(-self.scroll_x, -self.scroll_y)

    def layout_text_rects(self, layout_idx: int) -> list[Rect]:
        return [
            Rect.from_cdp(bounds).translate(-self.scroll_x, -self.scroll_y)
            for bounds in self.text_boxes.get(layout_idx, [])
        ]

    def layout_offset_size(self, layout_idx: int) -> tuple[float, float]:
        layout = self.raw["layout"]
        if "offsetRects" not in layout:
            bounds = layout["bounds"][layout_idx]
            return (bounds[2], bounds[3])

        # offsetRects entries are empty for nodes that aren't HTMLElements (e.g. <svg> content)
        offset_rect = layout["offsetRects"][layout_idx]
        if len(offset_rect) < 4:
            return (0, 0)
        return (offset_rect[2], offset_rect[3])

    def layout_styles(self, layout_idx: int) -> dict[str, str]:
        style_indices = self.raw["layout"]["styles"][layout_idx]
        return {
            style: self.strings[s_idx]
            for style, s_idx in zip(self.queried_styles, style_indices)
            if s_idx != -1
        }

    def paint_order(self, layout_idx: int) -> int:
        paint_orders = self.raw["layout"].get("paintOrders")
        if not paint_orders:
            return 0
        return paint_orders[layout_idx]

    def hit_candidates(self) -> Iterator[tuple[int, LiveNode]]:
        """Yield (layout index, node hit by that box) for every laid-out node."""
        for layout_idx, node_idx in enumerate(self.raw["layout"]["nodeIndex"]):
            node = self.nodes[node_idx] if node_idx < len(self.nodes) else None
            if node is None:
                node = self.hit_proxies.get(node_idx)
            if node is not None:
                yield layout_idx, node


def _rare_strings(data: RareStringData | None, strings: list[str]) -> dict[int, str]:
    if data is None:
        return {}
    return {idx: strings[s_idx] for idx, s_idx in zip(data["index"], data["value"])}


def _node_attributes(
    *, nodes: NodeTreeSnapshot, strings: list[str], node_idx: int
) -> dict[str, str]:
    """
    Build a dict of attribute name -> value for a given element node.

    Attributes are stored as a flat list of string indices, [name_0, value_0, name_1, ...].
    """
    if "attributes" not in nodes or node_idx >= len(nodes["attributes"]):
        return {}

    attrs_list = [strings[idx] if idx != -1 else "" for idx in nodes["attributes"][node_idx]]
    return {k: v for k, v in zip(*[iter(attrs_list)] * 2)}


def _load_document(
    document: DocumentSnapshot,
    *,
    strings: list[str],
    viewport: Viewport,
    queried_styles: list[str],
) -> LiveDocument:
    nodes = document["nodes"]
    layout = document["layout"]

    live_doc = LiveDocument(
        frame_id=strings[document["frameId"]],
        url=strings[document["documentURL"]] if "documentURL" in document else "",
        viewport=viewport,
        raw=document,
        strings=strings,
        queried_styles=queried_styles,
        scroll_x=document.get("scrollOffsetX", 0),
        scroll_y=document.get("scrollOffsetY", 0),
    )

    text_boxes: dict[int, list[list[float]]] = defaultdict(list)
    if "textBoxes" in document:
        for layout_idx, bounds in zip(
            document["textBoxes"]["layoutIndex"], document["textBoxes"]["bounds"]
        ):
            text_boxes[layout_idx].append(bounds)
    live_doc.text_boxes = text_boxes

    layout_index_by_node = {node_idx: idx for idx, node_idx in enumerate(layout["nodeIndex"])}
    shadow_root_types = _rare_strings(nodes.get("shadowRootType"), strings)
    pseudo_nodes = set(nodes.get("pseudoType", {"index": []})["index"])
    clickable_nodes = set(nodes.get("isClickable", {"index": []})["index"])
    node_values = nodes.get("nodeValue", [])
    backend_node_ids = nodes.get("backendNodeId", [])

    live_nodes: list[LiveNode | None] = []
    # snapshot nodes are in document order, so a parent always precedes its children
    for node_idx, (parent_idx, node_type) in enumerate(
        zip(nodes.get("parentIndex", []), nodes.get("nodeType", []))
    ):
        parent = live_nodes[parent_idx] if parent_idx >= 0 else None
        unreachable = parent_idx >= 0 and parent is None
        if node_idx in pseudo_nodes or unreachable:
            live_nodes.append(None)
            proxy = parent if parent is not None else live_doc.hit_proxies.get(parent_idx)
            if proxy is not None:
                live_doc.hit_proxies[node_idx] = proxy
            continue

        if node_type not in NodeType:
            live_nodes.append(None)
            continue

        value_idx = node_values[node_idx] if node_idx < len(node_values) else -1
        node = LiveNode(
            document=live_doc,
            node_index=node_idx,
            node_type=NodeType(node_type),
            node_name=strings[nodes["nodeName"][node_idx]],
            backend_node_id=backend_node_ids[node_idx] if node_idx < len(backend_node_ids) else 0,
            node_value=strings[value_idx] if value_idx != -1 else "",
            attributes=_node_attributes(nodes=nodes, strings=strings, node_idx=node_idx),
            is_clickable=node_idx in clickable_nodes,
            layout_index=layout_index_by_node.get(node_idx),
        )
        live_nodes.append(node)

        if parent is None:
            if node.node_type == NodeType.DOCUMENT_NODE and live_doc.root is None:
                live_doc.root = node
            continue

        if node.node_type == NodeType.DOCUMENT_FRAGMENT_NODE:
            # shadow roots hang off their host; closed and user-agent roots stay unreachable,
            # the same as they are for page scripts
            if shadow_root_types.get(node_idx) == "open" and parent.is_element:
                parent.shadow_root = node
                node.host = parent
            else:
                live_nodes[node_idx] = None
                live_doc.hit_proxies[node_idx] = parent
            continue

        node.parent = parent
        parent.child_nodes.append(node)

    live_doc.nodes = live_nodes
    return live_doc


def load_live_document(
    snapshot: DomSnapshot,
    viewport: Viewport,
    queried_styles: list[str] | None = None,
) -> LiveDocument:
    """
    Load every document in the snapshot and link iframes to their content documents.

    Returns the main frame's document. Iframes whose documents aren't part of the snapshot
    (out-of-process, cross-origin frames) keep ``content_document = None``.
    """
    if not snapshot["documents"]:
        raise ValueError("DOM snapshot contains no documents")

    queried_styles = queried_styles if queried_styles is not None else QUERIED_STYLES
    documents = [
        _load_document(
            document,
            strings=snapshot["strings"],
            viewport=viewport,
            queried_styles=queried_styles,
        )
        for document in snapshot["documents"]
    ]

    for document, live_doc in zip(snapshot["documents"], documents):
        if (content_doc_index := document["nodes"].get("contentDocumentIndex")) is None:
            continue

        for frame_idx, doc_idx in zip(content_doc_index["index"], content_doc_index["value"]):
            frame_node = live_doc.nodes[frame_idx] if frame_idx < len(live_doc.nodes) else None
            if frame_node is None or not 0 < doc_idx < len(documents):
                continue
            documents[doc_idx].owner_frame = frame_node
            frame_node.content_document = documents[doc_idx]

    logger.debug(
        "Loaded %d document(s) with %d nodes",
        len(documents),
        sum(len(d.nodes) for d in documents),
    )
    return documents[0]
