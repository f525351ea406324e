"""Tests for building DOM trees from whole pages."""

import logging

import pytest
from snapshot_factory import (
    DOCUMENT_NODE,
    VIEWPORT,
    FakeDocument,
    FakeNode,
    build_snapshot,
    el,
    find,
    page,
    text,
)

from domlens.dom.live import load_live_document
from domlens.dom.shapes import Rect
from domlens.dom.views import DomTree, DomTreeOptions, ElementRecord, TextRecord
from domlens.dom.walker import build_dom_tree, is_element_accepted, is_rich_text_root


def build(document, **options) -> DomTree:
    return build_dom_tree(build_snapshot(document), VIEWPORT, DomTreeOptions(**options))


def elements(tree: DomTree, tag_name: str) -> list[ElementRecord]:
    return [
        record
        for record in tree.map.values()
        if isinstance(record, ElementRecord) and record.tag_name == tag_name
    ]


def highlighted(tree: DomTree) -> dict[int, ElementRecord]:
    return {
        record.highlight_index: record
        for record in tree.map.values()
        if isinstance(record, ElementRecord) and record.highlight_index is not None
    }


def labelled(tag: str, label: str, rect, **kwargs) -> FakeNode:
    """An element whose only child is a text node filling its box."""
    return el(tag, text(label, rect=rect), rect=rect, **kwargs)


def mixed_page() -> FakeDocument:
    return page(
        el(
            "nav",
            labelled("a", "Home", (10, 10, 40, 14), attrs={"href": "/"}),
            labelled("a", "Docs", (60, 10, 40, 14), attrs={"href": "/docs"}),
            rect=(0, 0, 1280, 40),
        ),
        el(
            "main",
            el("input", attrs={"type": "text", "name": "q"}, rect=(10, 60, 200, 24)),
            el("button", text("Search", rect=(230, 65, 50, 14)), rect=(220, 60, 80, 24)),
            el("div", text("Plain text", rect=(10, 100, 80, 14)), rect=(10, 100, 300, 20)),
            el(
                "div",
                labelled("button", "Save", (10, 140, 80, 30), attrs={"id": "save"}),
                attrs={"role": "toolbar"},
                rect=(0, 130, 400, 50),
            ),
            rect=(0, 50, 1280, 600),
        ),
    )


# Scenarios


def test_disabled_input_is_visited_but_not_highlighted():
    tree = build(
        page(
            el("button", text("Submit", rect=(20, 20, 50, 14)), rect=(10, 10, 100, 30)),
            el("input", attrs={"disabled": ""}, rect=(10, 60, 150, 24)),
        )
    )

    assert list(highlighted(tree)) == [0]
    assert highlighted(tree)[0].tag_name == "button"

    [field] = elements(tree, "input")
    assert field.highlight_index is None
    assert field.is_visible is True
    assert field.is_interactive is False
    assert field.attributes == {"disabled": ""}


def test_click_handler_wrapper_absorbs_its_decoration():
    tree = build(
        page(
            el(
                "div",
                el("span", text("Click me", rect=(20, 20, 60, 20)), rect=(20, 20, 60, 20)),
                attrs={"onclick": "go()"},
                rect=(10, 10, 200, 50),
            )
        )
    )

    assert len(highlighted(tree)) == 1
    assert highlighted(tree)[0].tag_name == "div"
    [span] = elements(tree, "span")
    assert span.highlight_index is None


def test_menu_container_and_items_are_all_highlighted():
    items = [
        el(
            "div",
            text(label, rect=(20, 20 + 40 * i, 60, 14)),
            attrs={"role": "menuitem"},
            rect=(10, 10 + 40 * i, 200, 40),
        )
        for i, label in enumerate(["File", "Edit", "View"])
    ]
    tree = build(page(el("div", *items, attrs={"role": "menu"}, rect=(10, 10, 200, 120))))

    indices = highlighted(tree)
    assert sorted(indices) == [0, 1, 2, 3]
    assert indices[0].attributes == {"role": "menu"}
    assert all(indices[i].attributes == {"role": "menuitem"} for i in (1, 2, 3))


def test_empty_anchor_without_href_is_dropped():
    tree = build(
        page(
            el("a", rect=(10, 10, 0, 0)),
            el("a", attrs={"id": "unrendered"}),
            el("a", attrs={"class": "icon"}, rect=(10, 40, 16, 16)),
            el("a", attrs={"href": "/somewhere"}, rect=(10, 70, 0, 0)),
        )
    )

    anchors = elements(tree, "a")
    assert len(anchors) == 2
    assert {a.attributes.get("href") for a in anchors} == {None, "/somewhere"}


def test_far_below_viewport_needs_unlimited_expansion():
    document = page(
        el("button", text("Later", rect=(20, 5005, 40, 14)), rect=(10, 5000, 100, 30)),
        height=6000,
    )

    [button] = elements(build(document), "button")
    assert button.is_interactive is True
    assert button.is_top_element is False
    assert button.highlight_index is None

    [button] = elements(build(document, viewport_expansion=-1), "button")
    assert button.highlight_index == 0


def test_editor_markup_is_absorbed_by_the_editable_region():
    tree = build(
        page(
            el(
                "div",
                labelled("p", "First line", (10, 10, 200, 20)),
                labelled("p", "Second line", (10, 30, 200, 20)),
                attrs={"contenteditable": "true"},
                rect=(0, 0, 400, 100),
            )
        )
    )
    assert list(highlighted(tree)) == [0]
    assert highlighted(tree)[0].tag_name == "div"
    paragraphs = elements(tree, "p")
    assert len(paragraphs) == 2
    assert all(p.is_interactive and p.highlight_index is None for p in paragraphs)


def test_editable_region_inside_a_highlighted_element_gets_its_own_index():
    tree = build(
        page(
            el(
                "div",
                el(
                    "div",
                    labelled("p", "Draft", (20, 20, 200, 20)),
                    attrs={"id": "editor", "contenteditable": ""},
                    rect=(10, 10, 300, 60),
                ),
                attrs={"id": "card", "onclick": "open()"},
                rect=(0, 0, 400, 100),
            )
        )
    )
    indices = highlighted(tree)
    assert sorted(indices) == [0, 1]
    assert indices[0].attributes["id"] == "card"
    assert indices[1].xpath == "html/body/div/div"
    [p] = elements(tree, "p")
    assert p.highlight_index is None


def test_deeply_nested_page_is_walked():
    depth = 1000
    node = labelled("button", "Deep", (10, 10, 80, 30))
    for _ in range(depth):
        node = el("div", node)

    tree = build(page(node), viewport_expansion=-1)

    assert len(elements(tree, "div")) == depth
    [button] = highlighted(tree).values()
    assert button.tag_name == "button"
    assert button.highlight_index == 0
    assert button.xpath.split("/").count("div") == depth
    assert [t.index for t in tree.highlight_targets] == [0]


# Invariants


def test_highlight_indices_are_dense():
    tree = build(mixed_page())
    indices = sorted(highlighted(tree))
    assert indices == list(range(len(indices)))
    assert len(indices) == 5


def test_no_dangling_children():
    tree = build(mixed_page())
    for record in tree.map.values():
        if isinstance(record, ElementRecord):
            assert all(child in tree.map for child in record.children)
    assert tree.root_id in tree.map


def test_only_visible_records_are_highlighted():
    tree = build(
        page(
            el("button", attrs={"id": "shown"}, rect=(10, 10, 80, 30)),
            el("button", rect=(10, 50, 80, 30), style={"visibility": "hidden"}),
            el("button", rect=(10, 90, 80, 30), style={"display": "none"}),
        )
    )
    assert len(highlighted(tree)) == 1
    assert all(record.is_visible for record in highlighted(tree).values())


def test_rebuilding_an_unchanged_page_is_identical():
    snapshot = build_snapshot(mixed_page())
    first = build_dom_tree(snapshot, VIEWPORT)
    second = build_dom_tree(snapshot, VIEWPORT)
    assert first.to_json_dict() == second.to_json_dict()
    assert first.highlight_targets == second.highlight_targets


# Walk details


def test_root_is_a_minimal_body_record():
    tree = build(page(el("div", rect=(0, 0, 10, 10)), body_attrs={"class": "home"}))
    root = tree.map[tree.root_id]
    assert isinstance(root, ElementRecord)
    assert (root.tag_name, root.xpath, root.attributes) == ("body", "/body", {})
    assert root.is_visible is None


def test_missing_body_gives_empty_tree(caplog):
    html = el("html", el("head"), rect=(0, 0, 1280, 720))
    root = FakeNode(name="#document", node_type=DOCUMENT_NODE, children=[html])
    document = FakeDocument(root=root)
    with caplog.at_level(logging.WARNING, logger="domlens.dom.walker"):
        tree = build(document)
    assert tree.root_id is None
    assert tree.map == {}
    assert "no <body>" in caplog.text


def test_denied_tags_and_their_text_are_skipped():
    tree = build(
        page(
            el("script", text("var x = 1;")),
            el("style", text("p { color: red }")),
            el("svg", el("path"), rect=(0, 0, 10, 10)),
            el("noscript", text("Enable JS")),
            el("p", text("kept", rect=(0, 20, 30, 14)), rect=(0, 20, 30, 14)),
        )
    )
    tags = {record.tag_name for record in tree.map.values() if isinstance(record, ElementRecord)}
    assert tags == {"body", "p"}
    assert [r.text for r in tree.map.values() if isinstance(r, TextRecord)] == ["kept"]


def test_whitespace_text_is_dropped_and_text_is_trimmed():
    paragraph = el("p", text("  \n "), text("  padded  ", rect=(0, 0, 50, 14)), rect=(0, 0, 50, 14))
    tree = build(page(paragraph))
    texts = [record for record in tree.map.values() if isinstance(record, TextRecord)]
    assert [(t.text, t.is_visible) for t in texts] == [("padded", True)]


def test_highlight_overlay_container_is_skipped():
    overlay = el(
        "div",
        el("div", rect=(10, 10, 80, 30), style={"pointer-events": "none"}),
        attrs={"id": "domlens-highlight-container"},
        rect=(0, 0, 1280, 720),
        style={"position": "fixed", "pointer-events": "none"},
    )
    tree = build(page(el("button", rect=(10, 10, 80, 30)), overlay))
    assert elements(tree, "div") == []
    assert len(highlighted(tree)) == 1


def test_xpaths_count_same_name_siblings():
    tree = build(
        page(
            el("div", rect=(0, 0, 10, 10)),
            el("div", el("p", rect=(0, 10, 10, 10)), rect=(0, 10, 10, 10)),
            el("section", rect=(0, 20, 10, 10)),
        )
    )
    div_xpaths = sorted(r.xpath for r in elements(tree, "div"))
    assert div_xpaths == ["html/body/div[1]", "html/body/div[2]"]
    assert [r.xpath for r in elements(tree, "p")] == ["html/body/div[2]/p"]
    assert [r.xpath for r in elements(tree, "section")] == ["html/body/section"]


def test_attributes_are_only_kept_for_candidates():
    tree = build(
        page(
            el("div", attrs={"class": "layout"}, rect=(0, 0, 10, 10)),
            el("span", attrs={"tabindex": "0", "class": "chip"}, rect=(0, 10, 10, 10)),
        )
    )
    assert elements(tree, "div")[0].attributes == {}
    assert elements(tree, "span")[0].attributes == {"tabindex": "0", "class": "chip"}


def test_offscreen_empty_boxes_are_pruned_before_recursion():
    document = page(
        el("div", el("button", rect=(0, 3000, 80, 30)), attrs={"id": "lazy"}, rect=(0, 3000, 0, 0)),
        el("header", rect=(0, 3000, 0, 0), style={"position": "sticky"}),
        height=4000,
    )
    tree = build(document)
    assert elements(tree, "div") == []
    assert elements(tree, "button") == []
    assert len(elements(tree, "header")) == 1

    tree = build(document, viewport_expansion=-1)
    assert len(elements(tree, "div")) == 1
    assert len(elements(tree, "button")) == 1


def test_covered_element_is_not_highlighted():
    tree = build(
        page(
            el("button", rect=(100, 100, 80, 30)),
            el("div", rect=(0, 0, 1280, 720), style={"position": "fixed"}),
        )
    )
    [button] = elements(tree, "button")
    assert button.is_top_element is False
    assert button.highlight_index is None


def test_open_shadow_root_children_come_first():
    tree = build(
        page(
            el(
                "div",
                el("span", text("light", rect=(0, 50, 30, 14)), rect=(0, 50, 30, 14)),
                attrs={"id": "host"},
                rect=(0, 0, 400, 100),
                shadow=[el("button", text("Inner", rect=(15, 15, 40, 14)), rect=(10, 10, 80, 30))],
            )
        )
    )
    [host] = elements(tree, "div")
    assert host.shadow_root is True
    assert [tree.map[c].tag_name for c in host.children] == ["button", "span"]

    [button] = elements(tree, "button")
    assert button.highlight_index == 0
    assert button.xpath == "button"


def test_closed_shadow_root_content_is_not_walked():
    tree = build(
        page(
            el(
                "div",
                rect=(0, 0, 400, 100),
                shadow=[el("button", rect=(10, 10, 80, 30))],
                shadow_mode="closed",
            )
        )
    )
    assert elements(tree, "button") == []
    assert elements(tree, "div")[0].shadow_root is None


def test_same_origin_iframe_is_walked_with_frame_offsets():
    frame_document = page(
        labelled("button", "Pay", (10, 10, 80, 30), attrs={"id": "pay"}),
        width=400,
        height=300,
        frame_id="child",
    )
    iframe = el(
        "iframe",
        attrs={"src": "/checkout"},
        rect=(100, 100, 404, 306),
        style={"border-left-width": "2px", "border-top-width": "3px"},
        frame=frame_document,
    )
    tree = build(page(iframe))

    [frame] = elements(tree, "iframe")
    assert frame.attributes == {"src": "/checkout"}
    assert frame.children

    [button] = elements(tree, "button")
    assert button.highlight_index == 0

    [target] = tree.highlight_targets
    assert target.frame_id == "child"
    assert target.is_main_frame is False
    assert target.rect == Rect(x=112, y=113, width=80, height=30)


def test_inaccessible_iframe_is_skipped_with_a_warning(caplog):
    iframe = el("iframe", attrs={"src": "https://other.example/"}, rect=(0, 0, 300, 200))
    with caplog.at_level(logging.WARNING, logger="domlens.dom.walker"):
        tree = build(page(iframe, el("button", rect=(0, 250, 80, 30))))

    [frame] = elements(tree, "iframe")
    assert frame.children == []
    assert len(highlighted(tree)) == 1
    assert "Unable to access iframe content" in caplog.text


def test_main_frame_targets_carry_backend_ids_and_rects():
    tree = build(mixed_page())
    targets = {target.index: target for target in tree.highlight_targets}
    assert sorted(targets) == sorted(highlighted(tree))

    document = load_live_document(build_snapshot(mixed_page()), VIEWPORT)
    save = find(document, "save")
    [save_target] = [t for t in tree.highlight_targets if t.backend_node_id == save.backend_node_id]
    assert save_target.tag_name == "button"
    assert save_target.is_main_frame is True
    assert save_target.rect == Rect(x=10, y=140, width=80, height=30)


def test_debug_mode_logs_build_statistics(caplog):
    caplog.set_level(logging.DEBUG, logger="domlens.dom.walker")
    build(mixed_page(), debug_mode=True)
    assert "Built DOM tree" in caplog.text


@pytest.mark.parametrize(
    "tag, accepted",
    [("div", True), ("body", True), ("button", True), ("svg", False), ("template", False)],
)
def test_is_element_accepted(tag, accepted):
    document = load_live_document(build_snapshot(page(el(tag, attrs={"id": "target"}))), VIEWPORT)
    assert is_element_accepted(find(document, "target")) is accepted


@pytest.mark.parametrize(
    "attrs, expected",
    [
        ({"contenteditable": "true"}, True),
        ({"id": "tinymce"}, True),
        ({"class": "mce-content-body"}, True),
        ({"class": "content"}, False),
    ],
)
def test_is_rich_text_root(attrs, expected):
    document = load_live_document(
        build_snapshot(page(el("div", attrs={"data-name": "target", **attrs}))), VIEWPORT
    )
    [target] = [n for n in document.nodes if n is not None and n.has_attribute("data-name")]
    assert is_rich_text_root(target) is expected
