"""
Visual highlighting of the elements a build made addressable: an in-page overlay (drawn and
removed through injected scripts) and boxes drawn onto screenshots.
"""

import io
import json

from PIL import Image, ImageDraw, ImageFont

from domlens.dom.views import HighlightTarget


HIGHLIGHT_CONTAINER_ID = "domlens-highlight-container"

_OVERLAY_COLORS = [
    "#FF0000",
    "#00FF00",
    "#0000FF",
    "#FFA500",
    "#800080",
    "#008080",
    "#FF69B4",
    "#4B0082",
    "#FF4500",
    "#2E8B57",
    "#DC143C",
    "#4682B4",
]

_ELEMENT_COLORS = {
    "input": ("#00FF00", "black"),
    "a": ("#FF69B4", "white"),
    "div": ("#00FFFF", "black"),
}
_DEFAULT_COLOR = ("#FF0000", "white")

_DRAW_HIGHLIGHTS_FUNCTION = """
(boxes) => {
    const containerId = "%(container_id)s";
    let container = document.getElementById(containerId);
    if (!container) {
        container = document.createElement("div");
        container.id = containerId;
        container.style.position = "fixed";
        container.style.pointerEvents = "none";
        container.style.top = "0";
        container.style.left = "0";
        container.style.width = "100%%";
        container.style.height = "100%%";
        container.style.zIndex = "2147483647";
        document.body.appendChild(container);
    }

    for (const box of boxes) {
        const overlay = document.createElement("div");
        overlay.style.position = "fixed";
        overlay.style.border = `2px solid ${box.color}`;
        overlay.style.backgroundColor = `${box.color}1A`;
        overlay.style.boxSizing = "border-box";
        overlay.style.top = `${box.y}px`;
        overlay.style.left = `${box.x}px`;
        overlay.style.width = `${box.width}px`;
        overlay.style.height = `${box.height}px`;

        const label = document.createElement("div");
        label.textContent = String(box.index);
        label.style.position = "fixed";
        label.style.background = box.color;
        label.style.color = "white";
        label.style.padding = "1px 4px";
        label.style.borderRadius = "4px";
        label.style.fontSize = "12px";
        label.style.top = `${Math.max(box.y - 18, 0)}px`;
        label.style.left = `${box.x + box.width - 20}px`;

        container.appendChild(overlay);
        container.appendChild(label);
    }

    const removeOnScroll = () => container.remove();
    window.addEventListener("scroll", removeOnScroll, { once: true });
    window._highlightCleanupFunctions = window._highlightCleanupFunctions || [];
    window._highlightCleanupFunctions.push(
        () => window.removeEventListener("scroll", removeOnScroll)
    );
    return boxes.length;
}
""" % {"container_id": HIGHLIGHT_CONTAINER_ID}

CLEANUP_HIGHLIGHTS_SCRIPT = """
(() => {
    const container = document.getElementById("%(container_id)s");
    if (container) {
        container.remove();
    }
    const cleanups = window._highlightCleanupFunctions || [];
    cleanups.forEach((fn) => fn());
    window._highlightCleanupFunctions = [];
    return cleanups.length;
})()
""" % {"container_id": HIGHLIGHT_CONTAINER_ID}


def select_highlight_targets(
    targets: list[HighlightTarget], focus_highlight_index: int = -1
) -> list[HighlightTarget]:
    if focus_highlight_index < 0:
        return list(targets)
    return [t for t in targets if t.index == focus_highlight_index]


def highlight_script(targets: list[HighlightTarget], focus_highlight_index: int = -1) -> str:
    """Build the expression that draws overlay boxes for ``targets`` in the page."""
    boxes = [
        {
            "index": target.index,
            "x": target.rect.x,
            "y": target.rect.y,
            "width": target.rect.width,
            "height": target.rect.height,
            "color": _OVERLAY_COLORS[target.index % len(_OVERLAY_COLORS)],
        }
        for target in select_highlight_targets(targets, focus_highlight_index)
    ]
    return f"({_DRAW_HIGHLIGHTS_FUNCTION})({json.dumps(boxes)})"


def annotate_screenshot(img_bytes: bytes, targets: list[HighlightTarget]) -> bytes:
    with io.BytesIO(img_bytes) as img_buf:
        img = Image.open(img_buf)
        draw = ImageDraw.Draw(img)
        font = ImageFont.load_default()
        for target in targets:
            # target rects are already relative to the viewport the screenshot shows
            rect = target.rect
            bbox = [rect.left, rect.top, rect.right, rect.bottom]
            background_color, text_color = _ELEMENT_COLORS.get(target.tag_name, _DEFAULT_COLOR)
            draw.rectangle(bbox, outline=background_color, width=2)

            text = str(target.index)
            text_bbox = draw.textbbox((0, 0), text, font=font)
            text_width = text_bbox[2] - text_bbox[0]
            text_height = text_bbox[3] - text_bbox[1]

            # label sits in the upper-right corner of the box
            text_x = bbox[2] - text_width
            text_y = bbox[1]

            padding = 4
            draw.rectangle(
                (
                    text_x - padding,
                    text_y,
                    text_x + text_width + padding,
                    text_y + text_height + padding,
                ),
                fill=background_color,
            )
            draw.text((text_x, text_y), text, font=font, fill=text_color)

        with io.BytesIO() as out_buf:
            img.save(out_buf, format="PNG")
            return out_buf.getvalue()
