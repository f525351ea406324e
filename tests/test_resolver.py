"""Tests for top-element hit testing and nested-highlight decisions."""

from itertools import count

import pytest
from snapshot_factory import VIEWPORT, build_snapshot, el, find, page, text

from domlens.dom.live import load_live_document
from domlens.dom.resolver import (
    DISTINCT_INTERACTION_RULES,
    handle_highlighting,
    is_element_distinct_interaction,
    is_heuristically_interactive,
    is_menu_container,
    is_top_element,
)
from domlens.dom.views import ElementRecord
from domlens.dom.visibility import ViewportWindow


WINDOW = ViewportWindow(width=VIEWPORT.width, height=VIEWPORT.height)
UNLIMITED = ViewportWindow(width=VIEWPORT.width, height=VIEWPORT.height, expansion=-1)


def load(document):
    return load_live_document(build_snapshot(document), VIEWPORT)


def test_unobstructed_element_is_top(cache):
    button = el(
        "button", text("Go", rect=(110, 110, 20, 12)), attrs={"id": "go"}, rect=(100, 100, 80, 30)
    )
    document = load(page(button))
    assert is_top_element(find(document, "go"), cache, WINDOW)


def test_element_under_overlay_is_not_top(cache):
    document = load(
        page(
            el("button", attrs={"id": "go"}, rect=(100, 100, 80, 30)),
            el("div", rect=(0, 0, 1280, 720), style={"position": "fixed"}),
        )
    )
    assert not is_top_element(find(document, "go"), cache, WINDOW)
    assert is_top_element(find(document, "go"), cache, UNLIMITED)


def test_partially_covered_element_is_top_if_one_check_point_hits(cache):
    document = load(
        page(
            el("button", attrs={"id": "go"}, rect=(100, 100, 100, 40)),
            # covers the center and the top-left check point but not the bottom-right one
            el("div", rect=(0, 0, 160, 130), style={"position": "fixed"}),
        )
    )
    assert is_top_element(find(document, "go"), cache, WINDOW)


def test_off_screen_element_is_not_top(cache):
    document = load(page(el("button", attrs={"id": "go"}, rect=(10, 5000, 80, 30)), height=6000))
    assert not is_top_element(find(document, "go"), cache, WINDOW)


def test_element_in_open_shadow_root(cache):
    document = load(
        page(
            el(
                "div",
                rect=(0, 0, 400, 400),
                shadow=[el("button", attrs={"id": "inner"}, rect=(10, 10, 80, 30))],
            )
        )
    )
    assert is_top_element(find(document, "inner"), cache, WINDOW)


def test_elements_in_frames_are_top(cache):
    frame_document = page(
        el("button", attrs={"id": "inner"}, rect=(10, 10, 80, 30)), frame_id="child"
    )
    document = load(
        page(
            el("iframe", rect=(0, 0, 400, 300), frame=frame_document),
            el("div", rect=(0, 0, 1280, 720), style={"position": "fixed"}),
        )
    )
    assert is_top_element(find(document, "inner"), cache, WINDOW)


def test_hit_test_failure_fails_open(cache, monkeypatch):
    document = load(page(el("button", attrs={"id": "go"}, rect=(100, 100, 80, 30))))
    point_index = cache.get_point_index(document)

    def broken(*args, **kwargs):
        raise RuntimeError("detached")

    monkeypatch.setattr(point_index, "element_from_point", broken)
    assert is_top_element(find(document, "go"), cache, WINDOW)


@pytest.mark.parametrize(
    "role, expected", [("menu", True), ("menubar", True), ("listbox", True), ("tab", False)]
)
def test_menu_containers(role, expected):
    document = load(page(el("div", attrs={"id": "menu", "role": role})))
    assert is_menu_container(find(document, "menu")) is expected


def test_distinct_rules_are_ordered():
    assert [rule.name for rule in DISTINCT_INTERACTION_RULES] == [
        "iframe",
        "interactive-tag",
        "interactive-role",
        "content-editable",
        "test-id",
        "click-handler",
        "event-handler",
        "heuristic",
    ]


@pytest.mark.parametrize(
    "tag, attrs, expected",
    [
        ("iframe", {}, True),
        ("button", {}, True),
        ("div", {"role": "menuitem"}, True),
        ("div", {"contenteditable": "true"}, True),
        ("div", {"data-testid": "save"}, True),
        ("div", {"onclick": "save()"}, True),
        ("div", {"onkeydown": "save()"}, True),
        ("span", {}, False),
        ("div", {"class": "icon"}, False),
    ],
)
def test_distinct_interaction(tag, attrs, expected, cache):
    document = load(page(el("div", el(tag, attrs={"id": "target", **attrs}, rect=(0, 0, 10, 10)))))
    assert is_element_distinct_interaction(find(document, "target"), cache) is expected


def test_only_the_editing_host_is_a_distinct_interaction(cache):
    document = load(
        page(
            el(
                "div",
                el("p", attrs={"id": "para"}, rect=(0, 0, 100, 20)),
                attrs={"id": "editor", "contenteditable": ""},
                rect=(0, 0, 100, 40),
            )
        )
    )
    assert is_element_distinct_interaction(find(document, "editor"), cache)
    assert not is_element_distinct_interaction(find(document, "para"), cache)


def test_heuristic_needs_container_and_visible_children(cache):
    document = load(
        page(
            el(
                "a",
                el(
                    "div",
                    el("span", rect=(0, 0, 10, 10)),
                    attrs={"id": "nested", "class": "menu-item"},
                    rect=(0, 0, 50, 20),
                ),
                el("div", attrs={"id": "empty", "class": "item"}, rect=(0, 20, 50, 20)),
                rect=(0, 0, 50, 40),
            ),
            el(
                "div",
                el("span", rect=(0, 50, 10, 10)),
                attrs={"id": "top-level", "class": "item"},
                rect=(0, 50, 50, 20),
            ),
        )
    )
    assert is_heuristically_interactive(find(document, "nested"), cache)
    assert not is_heuristically_interactive(find(document, "empty"), cache)
    assert not is_heuristically_interactive(find(document, "top-level"), cache)


def highlight(record, node, is_parent_highlighted, cache, window=WINDOW):
    counter = count()
    return handle_highlighting(
        record,
        node,
        is_parent_highlighted,
        cache=cache,
        window=window,
        next_index=lambda: next(counter),
    )


def test_non_interactive_records_are_not_highlighted(cache):
    document = load(page(el("button", attrs={"id": "go"}, rect=(0, 0, 10, 10))))
    record = ElementRecord(tag_name="button", is_interactive=False)
    assert not highlight(record, find(document, "go"), False, cache)
    assert record.highlight_index is None


def test_interactive_record_gets_next_index(cache):
    document = load(page(el("button", attrs={"id": "go"}, rect=(0, 0, 10, 10))))
    record = ElementRecord(tag_name="button", is_interactive=True)
    assert highlight(record, find(document, "go"), False, cache)
    assert record.highlight_index == 0
    assert record.is_in_viewport is True


def test_nested_decoration_is_absorbed(cache):
    document = load(page(el("div", el("span", attrs={"id": "icon"}, rect=(0, 0, 10, 10)))))
    record = ElementRecord(tag_name="span", is_interactive=True)
    assert not highlight(record, find(document, "icon"), True, cache)
    assert record.highlight_index is None


def test_out_of_viewport_element_needs_unlimited_window(cache):
    document = load(page(el("button", attrs={"id": "go"}, rect=(0, 5000, 10, 10)), height=6000))
    record = ElementRecord(tag_name="button", is_interactive=True)
    assert not highlight(record, find(document, "go"), False, cache)
    assert record.is_in_viewport is False

    record = ElementRecord(tag_name="button", is_interactive=True)
    assert highlight(record, find(document, "go"), False, cache, window=UNLIMITED)
    assert record.highlight_index == 0
