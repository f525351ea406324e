from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from domlens.dom.shapes import Rect


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DomTreeOptions(_CamelModel):
    show_highlight_elements: bool = False
    # -1 disables every viewport check
    viewport_expansion: int = Field(default=0, ge=-1)
    focus_highlight_index: int = -1
    debug_mode: bool = False


class ElementRecord(_CamelModel):
    type: Literal["ELEMENT_NODE"] = "ELEMENT_NODE"
    tag_name: str
    attributes: dict[str, str] = {}
    xpath: str = ""
    children: list[str] = []
    shadow_root: bool | None = None
    is_visible: bool | None = None
    is_top_element: bool | None = None
    is_interactive: bool | None = None
    is_in_viewport: bool | None = None
    highlight_index: int | None = None


class TextRecord(_CamelModel):
    type: Literal["TEXT_NODE"] = "TEXT_NODE"
    text: str
    is_visible: bool


NodeRecord = Annotated[ElementRecord | TextRecord, Field(discriminator="type")]


class HighlightTarget(_CamelModel):
    """Where a highlighted element was at build time, for overlays and pointer actions."""

    index: int
    tag_name: str
    backend_node_id: int
    frame_id: str
    is_main_frame: bool
    # relative to the top-level viewport
    rect: Rect


class DomTree(_CamelModel):
    root_id: str | None = None
    map: dict[str, NodeRecord] = {}
    highlight_targets: list[HighlightTarget] = Field(default=[], exclude=True)

    def to_json_dict(self) -> dict[str, Any]:
        """The ``{rootId, map}`` payload handed to callers outside this process."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class InteractiveElement(_CamelModel):
    index: int
    tag: str
    text: str | None = None
    href: str | None = None
    type: str | None = None
    name: str | None = None
    value: str | None = None
    placeholder: str | None = None
