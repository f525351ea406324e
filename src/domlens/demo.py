import argparse
import asyncio
import json
import logging

from playwright.async_api import async_playwright

from domlens.browser.cdp.browser import AsyncCDPBrowser, CDPBrowserConfig
from domlens.dom.views import DomTreeOptions
from domlens.utils.logging import create_stream_logging_handler


logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print the interactive elements of a web page as JSON"
    )
    parser.add_argument("url")
    parser.add_argument(
        "--cdp-url", help="attach to a running browser instead of launching Chromium"
    )
    parser.add_argument(
        "--viewport-expansion",
        type=int,
        default=0,
        help="pixels around the viewport still considered visible (-1 for the whole page)",
    )
    parser.add_argument("--highlight", action="store_true", help="draw the highlight overlay")
    parser.add_argument("--headed", action="store_true")
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> None:
    options = DomTreeOptions(
        show_highlight_elements=args.highlight,
        viewport_expansion=args.viewport_expansion,
        debug_mode=args.debug,
    )

    async with async_playwright() as p:
        if args.cdp_url:
            config = CDPBrowserConfig(cdp_url=args.cdp_url, dom_tree_options=options)
            cdp_browser = await AsyncCDPBrowser.connect(p, config)
        else:
            browser = await p.chromium.launch(headless=not args.headed)
            cdp_browser = await AsyncCDPBrowser.create(browser=browser, dom_tree_options=options)

        if cdp_browser.get_active_context() is None:
            await cdp_browser.create_browser_context()
        if cdp_browser.get_active_page() is None:
            await cdp_browser.create_page()

        result = await cdp_browser.navigate(args.url)
        print(json.dumps(result, indent=2))

        await cdp_browser.close()


def main() -> None:
    args = parse_args()
    create_stream_logging_handler(logging.DEBUG if args.debug else logging.INFO)
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
