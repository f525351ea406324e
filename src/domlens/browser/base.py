from abc import ABC, abstractmethod
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from domlens.dom.views import DomTreeOptions


class Viewport(BaseModel):
    """Size of the layout viewport in CSS pixels"""

    width: int
    height: int


class PageDimensions(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    width: int
    height: int
    scroll_y: int
    scroll_x: int


class BrowserPageDetails(BaseModel):
    url: str
    title: str
    viewport: Viewport | None
    dimensions: PageDimensions


class ScreenshotDetails(BaseModel):
    b64_image: str
    error: Literal["", "unavailable"] = ""


class PageError(BaseModel):
    """Something the page reported while an operation ran"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: Literal["javascript", "console", "network", "security"]
    level: Literal["error", "warning", "info"]
    message: str
    source: str | None = None
    line: int | None = None
    column: int | None = None
    url: str | None = None
    status_code: int | None = None
    timestamp: str


class ErrorSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_errors: int = 0
    total_warnings: int = 0
    total_logs: int = 0
    has_javascript_errors: bool = Field(default=False, alias="hasJavaScriptErrors")
    has_network_errors: bool = False
    has_console_logs: bool = False

    @classmethod
    def from_errors(cls, errors: list[PageError]) -> "ErrorSummary":
        by_level: dict[str, list[PageError]] = {"error": [], "warning": [], "info": []}
        for error in errors:
            by_level[error.level].append(error)

        return cls(
            total_errors=len(by_level["error"]),
            total_warnings=len(by_level["warning"]),
            total_logs=len(by_level["info"]),
            has_javascript_errors=any(e.type == "javascript" for e in by_level["error"]),
            has_network_errors=any(e.type == "network" for e in by_level["error"]),
            has_console_logs=any(e.type == "console" for e in by_level["info"]),
        )


class NavigationResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    final_url: str
    title: str
    # None when the page couldn't be captured after navigating
    interactive_elements: list[dict[str, object]] | None = None
    # status of the main frame's document response, when one was seen
    status_code: int | None = None
    errors: list[PageError] = Field(default_factory=list)
    error_summary: ErrorSummary = Field(default_factory=ErrorSummary)


class ClickAction(BaseModel):
    type: Literal["click"] = "click"
    index: int


class TypeAction(BaseModel):
    """Replace the text of an element"""

    type: Literal["type"] = "type"
    index: int
    text: str


class FocusAction(BaseModel):
    type: Literal["focus"] = "focus"
    index: int


class WaitAction(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: Literal["wait"] = "wait"
    duration_ms: int = 1000


PageAction = Annotated[
    ClickAction | TypeAction | FocusAction | WaitAction, Field(discriminator="type")
]


class PageState(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    title: str
    # console messages logged while the action ran
    console_logs: list[str] | None = None


class ActionResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: PageAction
    success: bool
    error: str | None = None
    page_state: PageState | None = None


class BatchInteractResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    results: list[ActionResult]
    final_state: PageState
    errors: list[PageError] = Field(default_factory=list)
    error_summary: ErrorSummary = Field(default_factory=ErrorSummary)


class AsyncBrowserPage(ABC):
    """A browser tab whose interactive elements can be listed and acted on by highlight index."""

    @property
    @abstractmethod
    async def url(self) -> str:
        """The url currently committed in the tab"""

    @property
    @abstractmethod
    async def viewport(self) -> Viewport | None:
        """The layout viewport, or None while the page has no layout"""

    @property
    @abstractmethod
    async def dimensions(self) -> PageDimensions:
        """Scrollable content size and scroll offset"""

    @property
    @abstractmethod
    async def page_details(self) -> BrowserPageDetails:
        """Url, title and geometry of the tab in one call"""

    @abstractmethod
    async def goto(self, url: str) -> None:
        """
        Start navigating to ``url``. Highlight indices from earlier builds stop being valid.
        """

    @abstractmethod
    async def navigate(
        self,
        url: str,
        include_dom_tree: bool = True,
        dom_tree_options: DomTreeOptions | None = None,
    ) -> NavigationResult:
        """
        Navigate to the URL and describe the interactive elements of the loaded page
        """

    @abstractmethod
    async def take_screenshot(self) -> ScreenshotDetails:
        """
        Screenshot of the viewport with the latest highlight indices drawn on it
        """

    @abstractmethod
    async def get_interactive_elements(
        self, options: DomTreeOptions | None = None
    ) -> list[dict[str, object]]:
        """
        Build the DOM tree and return the highlighted elements as JSON-ready dicts
        """

    @abstractmethod
    async def cleanup_highlights(self) -> None:
        """
        Remove the highlight overlay from the page
        """

    @abstractmethod
    async def click(self, index: int) -> None:
        """
        Clicks on the element with the given highlight index
        """

    @abstractmethod
    async def enter_text(self, index: int, text: str) -> None:
        """
        Replaces the text of the element with the given highlight index
        """

    @abstractmethod
    async def focus(self, index: int) -> None:
        """
        Focus the element with the given highlight index
        """

    @abstractmethod
    async def batch_interact(
        self,
        actions: list[PageAction],
        stop_on_error: bool = False,
        capture_state_after_each: bool = False,
    ) -> BatchInteractResult:
        """
        Run the actions in order and report how each one went
        """
