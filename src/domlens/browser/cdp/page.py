import asyncio
import base64
from contextlib import suppress
from logging import getLogger
from typing import cast

from playwright.async_api import BrowserContext, CDPSession
from playwright.async_api import Error as PlaywrightError

from domlens.browser.base import (
    ActionResult,
    AsyncBrowserPage,
    BatchInteractResult,
    BrowserPageDetails,
    ClickAction,
    FocusAction,
    NavigationResult,
    PageAction,
    PageDimensions,
    PageState,
    ScreenshotDetails,
    TypeAction,
    Viewport,
    WaitAction,
)
from domlens.browser.cdp.error_collector import PageErrorCollector
from domlens.browser.cdp.types import DomSnapshot
from domlens.dom.extraction import extract_interactive_elements
from domlens.dom.live import QUERIED_STYLES
from domlens.dom.overlay import CLEANUP_HIGHLIGHTS_SCRIPT, annotate_screenshot, highlight_script
from domlens.dom.shapes import Rect
from domlens.dom.views import DomTree, DomTreeOptions, HighlightTarget
from domlens.dom.walker import build_dom_tree
from domlens.exceptions import DomLensException, DomTreeBuildError, UnknownHighlightIndexError
from domlens.utils.cdp import call_function_on_node
from domlens.utils.image_processing import encode_png, make_not_available_image


logger = getLogger(__name__)

_CAPTURE_TIMEOUT = 10.0
_SCREENSHOT_TIMEOUT = 5.0
_NAVIGATION_TIMEOUT = 3.0
_LOAD_TIMEOUT = 10.0
_LOAD_POLL_INTERVAL = 0.25

_BOUNDING_RECT_FUNCTION = """
    function boundingRect() {
        const rect = this.getBoundingClientRect();
        return { x: rect.x, y: rect.y, width: rect.width, height: rect.height };
    }
"""


class AsyncCDPBrowserPage(AsyncBrowserPage):
    def __init__(
        self,
        *,
        cdp_session: CDPSession,
        browser_context: BrowserContext,
        dom_tree_options: DomTreeOptions | None = None,
    ) -> None:
        self._cdp_session = cdp_session
        self._browser_context = browser_context
        self._dom_tree_options = dom_tree_options or DomTreeOptions()

        self._dom_tree: DomTree | None = None
        self._targets: dict[int, HighlightTarget] = {}

    async def init(self) -> None:
        await self.enable_domains()
        await self._disable_web_auth_n()

    @classmethod
    async def create(
        cls,
        *,
        cdp_session: CDPSession,
        browser_context: BrowserContext,
        dom_tree_options: DomTreeOptions | None = None,
    ) -> "AsyncCDPBrowserPage":
        """A factory method to create this class that should be used instead of the constructor"""
        page = AsyncCDPBrowserPage(
            cdp_session=cdp_session,
            browser_context=browser_context,
            dom_tree_options=dom_tree_options,
        )
        await page.init()
        return page

    @property
    async def page_id(self) -> str:
        info = await self._cdp_session.send("Target.getTargetInfo")
        page_id: str = info["targetInfo"]["targetId"]
        return page_id

    @property
    def dom_tree(self) -> DomTree | None:
        """The result of the latest successful build."""
        return self._dom_tree

    async def _disable_web_auth_n(self) -> None:
        await self._cdp_session.send("WebAuthn.enable", {"enableUI": False})
        await self._cdp_session.send(
            "WebAuthn.addVirtualAuthenticator",
            {
                "options": {
                    "protocol": "ctap2",
                    "transport": "usb",
                    "hasResidentKey": False,
                    "hasUserVerification": False,
                    "isUserVerified": False,
                }
            },
        )

    async def enable_domains(self) -> None:
        await self._cdp_session.send("Page.enable")
        await self._cdp_session.send("DOMSnapshot.enable")
        await self._cdp_session.send("DOM.enable")
        await self._cdp_session.send("Runtime.enable")
        await self._cdp_session.send("Network.enable")

    @property
    async def url(self) -> str:
        result = await self._cdp_session.send("Page.getNavigationHistory")
        cur_idx = result["currentIndex"]
        return cast(str, result["entries"][cur_idx]["url"])

    @property
    async def viewport(self) -> Viewport | None:
        result = await self._cdp_session.send("Page.getLayoutMetrics")
        layout_viewport = result.get("cssLayoutViewport")
        if not layout_viewport:
            return None

        return Viewport(
            width=int(layout_viewport["clientWidth"]),
            height=int(layout_viewport["clientHeight"]),
        )

    @property
    async def dimensions(self) -> PageDimensions:
        result = await self._cdp_session.send("Page.getLayoutMetrics")
        visual_viewport = result["cssVisualViewport"]

        return PageDimensions(
            width=int(result["cssContentSize"]["width"]),
            height=int(result["cssContentSize"]["height"]),
            scroll_x=int(visual_viewport["pageX"]),
            scroll_y=int(visual_viewport["pageY"]),
        )

    @property
    async def title(self) -> str:
        result = await self._cdp_session.send("Page.getNavigationHistory")
        cur_idx = result["currentIndex"]
        return cast(str, result["entries"][cur_idx]["title"])

    @property
    async def page_details(self) -> BrowserPageDetails:
        return BrowserPageDetails(
            url=await self.url,
            viewport=await self.viewport,
            dimensions=await self.dimensions,
            title=await self.title,
        )

    async def _capture_snapshot(self) -> tuple[DomSnapshot, Viewport]:
        """One capture round-trip; any failure here means there is nothing to build from."""
        try:
            viewport = await asyncio.wait_for(self.viewport, _CAPTURE_TIMEOUT)
            snapshot = cast(
                DomSnapshot,
                await asyncio.wait_for(
                    self._cdp_session.send(
                        "DOMSnapshot.captureSnapshot",
                        {
                            "computedStyles": QUERIED_STYLES,
                            "includePaintOrder": True,
                            "includeDOMRects": True,
                        },
                    ),
                    _CAPTURE_TIMEOUT,
                ),
            )
        except (PlaywrightError, TimeoutError) as e:
            raise DomTreeBuildError(f"Unable to capture the page: {e}") from e

        if viewport is None:
            raise DomTreeBuildError("Unable to read the page's layout viewport")
        return snapshot, viewport

    async def build_dom_tree(self, options: DomTreeOptions | None = None) -> DomTree:
        """
        Capture the page and build its DOM tree, replacing the result of any previous build.

        Raises :class:`DomTreeBuildError` when the page can't be captured or the capture
        can't be read (e.g. the document was replaced mid-capture).
        """
        options = options or self._dom_tree_options
        snapshot, viewport = await self._capture_snapshot()
        try:
            tree = build_dom_tree(snapshot, viewport, options)
        except (KeyError, IndexError, ValueError, RecursionError) as e:
            raise DomTreeBuildError(f"Malformed DOM snapshot: {e!r}") from e

        self._dom_tree = tree
        self._targets = {target.index: target for target in tree.highlight_targets}

        if options.show_highlight_elements:
            await self._draw_highlights(tree.highlight_targets, options.focus_highlight_index)
        return tree

    async def _draw_highlights(
        self, targets: list[HighlightTarget], focus_highlight_index: int
    ) -> None:
        try:
            await self._cdp_session.send(
                "Runtime.evaluate",
                {
                    "expression": highlight_script(targets, focus_highlight_index),
                    "returnByValue": True,
                },
            )
        except PlaywrightError:
            # the overlay is cosmetic, the tree is still valid without it
            logger.warning("Unable to draw the highlight overlay", exc_info=True)

    async def get_interactive_elements(
        self, options: DomTreeOptions | None = None
    ) -> list[dict[str, object]]:
        tree = await self.build_dom_tree(options)
        return [
            element.model_dump(exclude_none=True)
            for element in extract_interactive_elements(tree)
        ]

    async def cleanup_highlights(self) -> None:
        await self._cdp_session.send(
            "Runtime.evaluate",
            {"expression": CLEANUP_HIGHLIGHTS_SCRIPT, "returnByValue": True},
        )

    async def goto(self, url: str) -> None:
        # Don't wait for navigation completion when interception rules might pause responses
        with suppress(TimeoutError):
            await asyncio.wait_for(
                self._cdp_session.send("Page.navigate", {"url": url}), _NAVIGATION_TIMEOUT
            )
        self._dom_tree = None
        self._targets = {}

    async def _wait_for_load(self) -> None:
        async def poll() -> None:
            while True:
                result = await self._cdp_session.send(
                    "Runtime.evaluate",
                    {"expression": "document.readyState", "returnByValue": True},
                )
                if result.get("result", {}).get("value") == "complete":
                    return
                await asyncio.sleep(_LOAD_POLL_INTERVAL)

        try:
            await asyncio.wait_for(poll(), _LOAD_TIMEOUT)
        except TimeoutError:
            logger.info("Page did not finish loading within %ss, continuing", _LOAD_TIMEOUT)

    async def navigate(
        self,
        url: str,
        include_dom_tree: bool = True,
        dom_tree_options: DomTreeOptions | None = None,
    ) -> NavigationResult:
        """
        Navigate to ``url`` and, unless disabled, list the interactive elements of the result.

        A page that can't be captured doesn't fail the navigation: the result is returned
        without ``interactive_elements``. Errors the page reports along the way are collected
        into ``errors``.
        """
        with PageErrorCollector(self._cdp_session, await self._main_frame_id()) as collector:
            await self.goto(url)
            await self._wait_for_load()

            interactive_elements: list[dict[str, object]] | None = None
            if include_dom_tree:
                try:
                    interactive_elements = await self.get_interactive_elements(dom_tree_options)
                except DomTreeBuildError:
                    logger.warning("Proceeding without DOM tree for %s", url, exc_info=True)

            final_url = await self.url
            title = await self.title

        return NavigationResult(
            url=url,
            final_url=final_url,
            title=title,
            interactive_elements=interactive_elements,
            status_code=collector.status_code,
            errors=collector.errors,
            error_summary=collector.summary,
        )

    async def _main_frame_id(self) -> str:
        result = await self._cdp_session.send("Page.getFrameTree")
        return cast(str, result["frameTree"]["frame"]["id"])

    async def _perform(self, action: PageAction) -> None:
        match action:
            case ClickAction(index=index):
                await self.click(index)
            case TypeAction(index=index, text=text):
                await self.enter_text(index, text)
            case FocusAction(index=index):
                await self.focus(index)
            case WaitAction(duration_ms=duration_ms):
                await asyncio.sleep(duration_ms / 1000)

    async def batch_interact(
        self,
        actions: list[PageAction],
        stop_on_error: bool = False,
        capture_state_after_each: bool = False,
    ) -> BatchInteractResult:
        """
        Run ``actions`` in order against the highlight indices of the latest build.

        A failing action is reported with its error and the rest still run, unless
        ``stop_on_error`` is set.
        """
        results: list[ActionResult] = []
        with PageErrorCollector(self._cdp_session) as collector:
            for action in actions:
                logged_before = len(collector.errors)
                try:
                    await self._perform(action)
                except (DomLensException, PlaywrightError) as e:
                    logger.info("Action %s failed: %s", action, e)
                    results.append(ActionResult(action=action, success=False, error=str(e)))
                    if stop_on_error:
                        break
                    continue

                result = ActionResult(action=action, success=True)
                if capture_state_after_each:
                    console_logs = [
                        f"[{error.level}] {error.message}"
                        for error in collector.errors[logged_before:]
                        if error.type == "console"
                    ]
                    result.page_state = PageState(
                        url=await self.url, title=await self.title, console_logs=console_logs
                    )
                results.append(result)

            final_state = PageState(url=await self.url, title=await self.title)

        return BatchInteractResult(
            results=results,
            final_state=final_state,
            errors=collector.errors,
            error_summary=collector.summary,
        )

    async def take_screenshot(self) -> ScreenshotDetails:
        try:
            screenshot = await asyncio.wait_for(
                self._cdp_session.send("Page.captureScreenshot", {"format": "png"}),
                timeout=_SCREENSHOT_TIMEOUT,
            )
        except TimeoutError:
            # Fallback to a "not available" image if screenshot times out
            return ScreenshotDetails(b64_image=make_not_available_image(), error="unavailable")

        img = base64.b64decode(screenshot["data"])
        annotated = annotate_screenshot(img, list(self._targets.values()))
        return ScreenshotDetails(b64_image=encode_png(annotated))

    def _get_target(self, index: int) -> HighlightTarget:
        if (target := self._targets.get(index)) is None:
            raise UnknownHighlightIndexError(index)
        return target

    async def _current_rect(self, target: HighlightTarget) -> Rect:
        """
        Re-measure a main-frame target, since the page may have scrolled or reflowed since the
        build. Frame targets and elements that have gone away fall back to the build-time rect.
        """
        if not target.is_main_frame:
            return target.rect

        try:
            value = await call_function_on_node(
                self._cdp_session, target.backend_node_id, _BOUNDING_RECT_FUNCTION
            )
        except PlaywrightError:
            logger.debug("Unable to re-measure element %d", target.index, exc_info=True)
            return target.rect

        return Rect.model_validate(value)

    async def click(self, index: int) -> None:
        target = self._get_target(index)
        x, y = (await self._current_rect(target)).center

        await self._cdp_session.send(
            "Input.dispatchMouseEvent",
            {
                "type": "mouseMoved",
                "x": x,
                "y": y,
            },
        )
        await asyncio.sleep(0.3)
        await self._cdp_session.send(
            "Input.dispatchMouseEvent",
            {
                "type": "mousePressed",
                "button": "left",
                "x": x,
                "y": y,
                "clickCount": 1,
            },
        )
        await asyncio.sleep(0.1)
        await self._cdp_session.send(
            "Input.dispatchMouseEvent",
            {
                "type": "mouseReleased",
                "button": "left",
                "x": x,
                "y": y,
                "clickCount": 1,
            },
        )

    async def focus(self, index: int) -> None:
        target = self._get_target(index)
        await self._cdp_session.send("DOM.focus", {"backendNodeId": target.backend_node_id})

    async def enter_text(self, index: int, text: str) -> None:
        await self.focus(index)
        await self._cdp_session.send(
            "Input.dispatchKeyEvent",
            {"type": "keyDown", "commands": ["selectAll", "delete"]},
        )
        await self._cdp_session.send(
            "Input.dispatchKeyEvent",
            {"type": "keyUp", "commands": ["selectAll", "delete"]},
        )
        await self._cdp_session.send("Input.insertText", {"text": text})
