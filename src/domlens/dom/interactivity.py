"""
Decide whether an element is interactive.

The classifier is an ordered list of named rules. Each rule either gives a verdict (True/False)
or passes (None); the first verdict wins and an element no rule claims is not interactive. Keep
the rules small and independent so each one can be reasoned about, and tested, on its own.
"""

from collections.abc import Callable
from typing import NamedTuple

from domlens.dom.geometry import GeometryCache
from domlens.dom.live import LiveNode


INTERACTIVE_ELEMENTS = {
    "a",
    "button",
    "input",
    "select",
    "textarea",
    "details",
    "summary",
    "label",
    "option",
    "optgroup",
    "fieldset",
    "legend",
}

INTERACTIVE_ROLES = {
    "button",
    "menu",
    "menubar",
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

INTERACTIVE_CURSORS = {
    "pointer",
    "move",
    "text",
    "grab",
    "grabbing",
    "cell",
    "copy",
    "alias",
    "all-scroll",
    "col-resize",
    "context-menu",
    "crosshair",
    "e-resize",
    "ew-resize",
    "help",
    "n-resize",
    "ne-resize",
    "nesw-resize",
    "ns-resize",
    "nw-resize",
    "nwse-resize",
    "row-resize",
    "s-resize",
    "se-resize",
    "sw-resize",
    "vertical-text",
    "w-resize",
    "zoom-in",
    "zoom-out",
}
NON_INTERACTIVE_CURSORS = {
    "not-allowed",
    "no-drop",
    "wait",
    "progress",
    "initial",
    "inherit",
}

INTERACTIVE_CLASS_TOKENS = {"button", "dropdown-toggle"}
DISABLING_ATTRIBUTES = ("disabled", "readonly")
MOUSE_HANDLER_ATTRIBUTES = ("onclick", "onmousedown", "onmouseup", "ondblclick")

# elements worth shipping attributes for in the serialized tree
CANDIDATE_ELEMENTS = {"a", "button", "input", "select", "textarea", "details", "summary", "label"}
CANDIDATE_ATTRIBUTES = ("onclick", "role", "tabindex", "data-action")


Verdict = bool | None


class InteractivityRule(NamedTuple):
    name: str
    check: Callable[[LiveNode, dict[str, str]], Verdict]


def is_explicitly_disabled(element: LiveNode) -> bool:
    return any(element.has_attribute(attr) for attr in DISABLING_ATTRIBUTES) or element.is_inert


def _interactive_cursor(element: LiveNode, styles: dict[str, str]) -> Verdict:
    if element.tag_name != "html" and styles.get("cursor") in INTERACTIVE_CURSORS:
        return True
    return None


def _native_interactive_tag(element: LiveNode, styles: dict[str, str]) -> Verdict:
    if element.tag_name not in INTERACTIVE_ELEMENTS:
        return None
    if styles.get("cursor") in NON_INTERACTIVE_CURSORS or is_explicitly_disabled(element):
        return False
    return True


def _content_editable(element: LiveNode, styles: dict[str, str]) -> Verdict:
    if element.get_attribute("contenteditable") == "true" or element.is_content_editable:
        return True
    return None


def _interactive_class_or_attribute(element: LiveNode, styles: dict[str, str]) -> Verdict:
    if (
        INTERACTIVE_CLASS_TOKENS.intersection(element.class_list)
        or element.get_attribute("data-index")
        or element.get_attribute("data-toggle") == "dropdown"
        or element.get_attribute("aria-haspopup") == "true"
    ):
        return True
    return None


def _interactive_role(element: LiveNode, styles: dict[str, str]) -> Verdict:
    if (
        element.get_attribute("role") in INTERACTIVE_ROLES
        or element.get_attribute("aria-role") in INTERACTIVE_ROLES
    ):
        return True
    return None


def _mouse_handler(element: LiveNode, styles: dict[str, str]) -> Verdict:
    # is_clickable covers listeners bound from script (element.onclick = ...)
    if element.is_clickable or any(element.has_attribute(a) for a in MOUSE_HANDLER_ATTRIBUTES):
        return True
    return None


INTERACTIVITY_RULES: tuple[InteractivityRule, ...] = (
    InteractivityRule("interactive-cursor", _interactive_cursor),
    InteractivityRule("native-interactive-tag", _native_interactive_tag),
    InteractivityRule("content-editable", _content_editable),
    InteractivityRule("interactive-class-or-attribute", _interactive_class_or_attribute),
    InteractivityRule("interactive-role", _interactive_role),
    InteractivityRule("mouse-handler", _mouse_handler),
)


def classify_interactivity(element: LiveNode, styles: dict[str, str]) -> tuple[str | None, bool]:
    """Return the name of the deciding rule (None if no rule applied) and the verdict."""
    for rule in INTERACTIVITY_RULES:
        if (verdict := rule.check(element, styles)) is not None:
            return rule.name, verdict
    return None, False


def is_interactive_element(element: LiveNode, cache: GeometryCache) -> bool:
    if not element.is_element:
        return False
    _, verdict = classify_interactivity(element, cache.get_style(element))
    return verdict


def is_interactive_candidate(element: LiveNode) -> bool:
    if not element.is_element:
        return False
    if element.tag_name in CANDIDATE_ELEMENTS:
        return True
    return (
        any(element.has_attribute(attr) for attr in CANDIDATE_ATTRIBUTES)
        or element.get_attribute("contenteditable") == "true"
    )
