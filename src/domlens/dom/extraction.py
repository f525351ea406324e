from domlens.dom.views import DomTree, ElementRecord, InteractiveElement, TextRecord


MAX_TEXT_LENGTH = 50
MAX_VALUE_LENGTH = 30
_ELLIPSIS = "..."


def _truncate(text: str) -> str:
    if len(text) <= MAX_TEXT_LENGTH:
        return text
    return text[: MAX_TEXT_LENGTH - len(_ELLIPSIS)] + _ELLIPSIS


def _visible_text(tree: DomTree, record: ElementRecord) -> str:
    parts = []
    for child_id in record.children:
        child = tree.map.get(child_id)
        if isinstance(child, TextRecord) and child.is_visible:
            parts.append(child.text)
    return " ".join(parts)


def _describe(tree: DomTree, record: ElementRecord, index: int) -> InteractiveElement:
    element = InteractiveElement(index=index, tag=record.tag_name)

    if text := _visible_text(tree, record):
        element.text = _truncate(text)

    # present-but-empty attributes say nothing about the element
    attributes = record.attributes
    match record.tag_name:
        case "a":
            element.href = attributes.get("href") or None
        case "input" | "button":
            element.type = attributes.get("type") or None
            element.name = attributes.get("name") or None
            if (value := attributes.get("value")) and len(value) <= MAX_VALUE_LENGTH:
                element.value = value
            element.placeholder = attributes.get("placeholder") or None
        case "select":
            element.name = attributes.get("name") or None

    return element


def extract_interactive_elements(tree: DomTree) -> list[InteractiveElement]:
    """
    Describe every highlighted element of ``tree`` in a compact form suitable for an agent.

    Pure over the tree: safe to call any number of times on the same result.
    """
    if tree.root_id is None:
        return []

    elements: list[InteractiveElement] = []
    stack = [tree.root_id]
    while stack:
        record = tree.map.get(stack.pop())
        if not isinstance(record, ElementRecord):
            continue

        if (index := record.highlight_index) is not None:
            elements.append(_describe(tree, record, index))
        # reversed so children pop in document order
        stack.extend(reversed(record.children))

    return sorted(elements, key=lambda e: e.index)
