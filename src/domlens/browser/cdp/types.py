"""
The subset of the ``DOMSnapshot.captureSnapshot`` result that DOM trees are built from.

Every string in the payload is an index into ``DomSnapshot.strings``; per-node arrays are
indexed by node, per-box arrays by layout entry. "Rare" data only lists the nodes it applies to.
"""

from enum import IntEnum
from typing import Literal, NewType, NotRequired, TypedDict


StringIndex = NewType("StringIndex", int)


class NodeType(IntEnum):
    # https://dom.spec.whatwg.org/#dom-node-nodetype
    ELEMENT_NODE = 1
    TEXT_NODE = 3
    COMMENT_NODE = 8
    DOCUMENT_NODE = 9
    DOCUMENT_FRAGMENT_NODE = 11


NodeTypeLiteral = Literal[1, 2, 3, 4, 7, 8, 9, 10, 11]


class RareFlagData(TypedDict):
    index: list[int]


class RareIndexData(TypedDict):
    index: list[int]
    value: list[int]


class RareStringData(TypedDict):
    index: list[int]
    value: list[StringIndex]


class NodeTreeSnapshot(TypedDict):
    parentIndex: NotRequired[list[int]]
    nodeType: NotRequired[list[NodeTypeLiteral]]
    # "open" / "closed" on shadow root fragments
    shadowRootType: NotRequired[RareStringData]
    nodeName: NotRequired[list[StringIndex]]
    nodeValue: NotRequired[list[StringIndex]]
    backendNodeId: NotRequired[list[int]]
    # flattened name/value pairs
    attributes: NotRequired[list[list[StringIndex]]]
    # index into DomSnapshot.documents, for iframes whose document was captured
    contentDocumentIndex: NotRequired[RareIndexData]
    pseudoType: NotRequired[RareStringData]
    # has a click listener or is natively activatable
    isClickable: NotRequired[RareFlagData]


class LayoutTreeSnapshot(TypedDict):
    nodeIndex: list[int]
    # one entry per QUERIED_STYLES property, in order
    styles: list[list[StringIndex]]
    # [x, y, width, height] in document coordinates
    bounds: list[list[float]]
    text: list[StringIndex]
    offsetRects: NotRequired[list[list[float]]]
    paintOrders: NotRequired[list[int]]


class TextBoxSnapshot(TypedDict):
    # index into LayoutTreeSnapshot.nodeIndex of the owning text node
    layoutIndex: list[int]
    bounds: list[list[float]]
    start: list[int]
    length: list[int]


class DocumentSnapshot(TypedDict):
    documentURL: NotRequired[StringIndex]
    frameId: StringIndex
    nodes: NodeTreeSnapshot
    layout: LayoutTreeSnapshot
    textBoxes: NotRequired[TextBoxSnapshot]
    scrollOffsetX: NotRequired[float]
    scrollOffsetY: NotRequired[float]


class DomSnapshot(TypedDict):
    documents: list[DocumentSnapshot]
    strings: list[str]
