from collections.abc import Callable
from logging import getLogger
from typing import Any, TypedDict, cast
from uuid import uuid4

from langchain_core.tools import BaseTool, tool
from playwright.async_api import Browser, BrowserContext, CDPSession, Page, Playwright
from pydantic import BaseModel

from domlens.browser.base import PageAction
from domlens.browser.cdp.page import AsyncCDPBrowserPage
from domlens.dom.views import DomTreeOptions
from domlens.exceptions import DomLensException


logger = getLogger(__name__)

DEFAULT_CONTEXT_ID = "default"


class CDPBrowserConfig(BaseModel):
    cdp_url: str
    dom_tree_options: DomTreeOptions = DomTreeOptions()


class AsyncCDPBrowserContextData(TypedDict):
    id: str
    context: BrowserContext


class AsyncCDPBrowserPageData(TypedDict):
    id: str
    context_id: str
    page: AsyncCDPBrowserPage
    cdp_session: CDPSession


class AsyncCDPBrowser:
    def __init__(
        self,
        *,
        browser: Browser,
        dom_tree_options: DomTreeOptions | None = None,
    ):
        self._browser = browser
        self._dom_tree_options = dom_tree_options or DomTreeOptions()

        self._contexts: dict[str, AsyncCDPBrowserContextData] = {}
        self._pages: dict[str, AsyncCDPBrowserPageData] = {}

        self._active_context: str | None = None
        self._active_page: str | None = None

    async def init(self) -> None:
        # Adopt the browser's default context (and its only page) when connecting over CDP
        if len(self._browser.contexts) != 1:
            return

        context = self._browser.contexts[0]
        self._contexts[DEFAULT_CONTEXT_ID] = {"id": DEFAULT_CONTEXT_ID, "context": context}
        self._active_context = DEFAULT_CONTEXT_ID

        if len(context.pages) == 1:
            await self._register_page(context.pages[0], DEFAULT_CONTEXT_ID)

    @classmethod
    async def create(
        cls,
        *,
        browser: Browser,
        dom_tree_options: DomTreeOptions | None = None,
    ) -> "AsyncCDPBrowser":
        """A factory method to create the Browser that should be used instead of the constructor"""
        cdp_browser = AsyncCDPBrowser(browser=browser, dom_tree_options=dom_tree_options)
        await cdp_browser.init()
        return cdp_browser

    @classmethod
    async def connect(cls, playwright: Playwright, config: CDPBrowserConfig) -> "AsyncCDPBrowser":
        """Attach to a running browser at ``config.cdp_url``"""
        browser = await playwright.chromium.connect_over_cdp(config.cdp_url)
        return await cls.create(browser=browser, dom_tree_options=config.dom_tree_options)

    async def close(self) -> None:
        await self._browser.close()

    async def _register_page(self, page: Page, context_id: str) -> str:
        cdp_session = await page.context.new_cdp_session(page)
        cdp_page = await AsyncCDPBrowserPage.create(
            cdp_session=cdp_session,
            browser_context=page.context,
            dom_tree_options=self._dom_tree_options,
        )
        page_id = await cdp_page.page_id

        self._pages[page_id] = {
            "id": page_id,
            "context_id": context_id,
            "cdp_session": cdp_session,
            "page": cdp_page,
        }
        self._active_page = page_id
        logger.debug("Registered page %s in context %s", page_id, context_id)
        return page_id

    async def create_browser_context(self) -> str:
        """Creates a new browser context and sets it to be the active context"""
        context_id = str(uuid4())
        context = await self._browser.new_context(ignore_https_errors=True)

        self._contexts[context_id] = {"id": context_id, "context": context}

        self._active_context = context_id
        return context_id

    def get_active_context(self) -> AsyncCDPBrowserContextData | None:
        if not self._active_context:
            return None

        context = self._contexts.get(self._active_context)

        if not context:
            raise DomLensException("Invalid active context")

        return context

    async def create_page(self) -> str:
        """Creates a new browser page within the active context and sets it to be the active page"""
        context_data = self.get_active_context()
        if not context_data:
            raise DomLensException("No active context set")

        page = await context_data["context"].new_page()
        return await self._register_page(page, context_data["id"])

    def get_active_page(self) -> AsyncCDPBrowserPageData | None:
        if not self._active_page:
            return None

        return self._pages[self._active_page]

    def get_active_page_or_throw(self) -> AsyncCDPBrowserPageData:
        if not self._active_page:
            raise DomLensException("No active page set")

        return self._pages[self._active_page]

    async def list_pages(self) -> dict[str, Any]:
        """Lists all browser pages"""
        return {k: await v["page"].page_details for (k, v) in self._pages.items()}

    async def set_active_page(self, page_id: str) -> None:
        "Sets the active page to the specified page id"
        if page_id not in self._pages:
            raise DomLensException(f"Unknown page {page_id}")
        self._active_page = page_id

    # Pass-through methods so the page actions can be exposed as tools on the active page
    async def navigate(self, url: str) -> dict[str, Any]:
        """Navigates the active page to a url and lists its interactive elements by index"""
        page_data = self.get_active_page_or_throw()
        result = await page_data["page"].navigate(url)
        return result.model_dump(by_alias=True, exclude_none=True)

    async def get_interactive_elements(self) -> list[dict[str, object]]:
        """Lists the interactive elements of the active page, each with its highlight index"""
        page_data = self.get_active_page_or_throw()
        return await page_data["page"].get_interactive_elements()

    async def click(self, index: int) -> None:
        """Clicks the element with the given highlight index on the active page"""
        page_data = self.get_active_page_or_throw()
        return await page_data["page"].click(index)

    async def enter_text(self, index: int, text: str) -> None:
        """Replaces the text of the element with the given highlight index on the active page"""
        page_data = self.get_active_page_or_throw()
        return await page_data["page"].enter_text(index, text)

    async def focus(self, index: int) -> None:
        """Focuses the element with the given highlight index on the active page"""
        page_data = self.get_active_page_or_throw()
        return await page_data["page"].focus(index)

    async def batch_interact(
        self,
        actions: list[PageAction],
        stop_on_error: bool = False,
        capture_state_after_each: bool = False,
    ) -> dict[str, Any]:
        """
        Runs click, type, focus and wait actions in order on the active page, using highlight
        indices from the latest listing, and reports the outcome of each
        """
        page_data = self.get_active_page_or_throw()
        result = await page_data["page"].batch_interact(
            actions, stop_on_error=stop_on_error, capture_state_after_each=capture_state_after_each
        )
        return result.model_dump(by_alias=True, exclude_none=True)

    async def cleanup_highlights(self) -> None:
        """Removes the highlight overlay from the active page"""
        page_data = self.get_active_page_or_throw()
        return await page_data["page"].cleanup_highlights()

    @property
    def browser_tools(self) -> list[BaseTool]:
        tool_methods = [
            self.list_pages,
            self.create_browser_context,
            self.create_page,
            self.set_active_page,
        ]

        tools: list[BaseTool] = [
            tool(name_or_callable=cast(Callable[..., Any], func)) for func in tool_methods
        ]
        return tools

    @property
    def page_tools(self) -> list[BaseTool]:
        tool_methods = [
            self.navigate,
            self.get_interactive_elements,
            self.click,
            self.enter_text,
            self.focus,
            self.batch_interact,
            self.cleanup_highlights,
        ]

        tools: list[BaseTool] = [
            tool(name_or_callable=cast(Callable[..., Any], func)) for func in tool_methods
        ]
        return tools
