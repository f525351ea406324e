"""
Record what a page reports over CDP while an operation runs: uncaught exceptions, console
messages, failed responses and requests that never completed.
"""

import json
from collections.abc import Callable
from datetime import UTC, datetime
from logging import getLogger
from types import TracebackType
from typing import Any, Literal

from playwright.async_api import CDPSession

from domlens.browser.base import ErrorSummary, PageError


logger = getLogger(__name__)

# console.warn is reported as "warning"
_CONSOLE_LEVELS: dict[str, Literal["error", "warning"]] = {
    "error": "error",
    "assert": "error",
    "warning": "warning",
}


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _is_ok_status(status: int) -> bool:
    # 0 for responses served without a status line (e.g. from a service worker cache)
    return status == 0 or 200 <= status < 300 or status == 304


def _remote_object_text(remote_object: dict[str, Any]) -> str:
    if "value" in remote_object:
        value = remote_object["value"]
        return value if isinstance(value, str) else json.dumps(value)
    return str(remote_object.get("description") or remote_object.get("type", ""))


class PageErrorCollector:
    """
    Listens to the ``Runtime`` and ``Network`` events of one CDP session between
    :meth:`start` and :meth:`stop` (or for the duration of a ``with`` block).

    ``main_frame_id`` identifies the frame whose document response sets :attr:`status_code`.
    """

    def __init__(self, cdp_session: CDPSession, main_frame_id: str | None = None) -> None:
        self._cdp_session = cdp_session
        self._main_frame_id = main_frame_id
        self._errors: list[PageError] = []
        self._request_urls: dict[str, str] = {}
        self.status_code: int | None = None

        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            "Runtime.consoleAPICalled": self._on_console_api_called,
            "Runtime.exceptionThrown": self._on_exception_thrown,
            "Network.requestWillBeSent": self._on_request_will_be_sent,
            "Network.responseReceived": self._on_response_received,
            "Network.loadingFailed": self._on_loading_failed,
        }

    def __enter__(self) -> "PageErrorCollector":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()

    def start(self) -> None:
        for event, handler in self._handlers.items():
            self._cdp_session.on(event, handler)

    def stop(self) -> None:
        for event, handler in self._handlers.items():
            self._cdp_session.remove_listener(event, handler)

    @property
    def errors(self) -> list[PageError]:
        return list(self._errors)

    @property
    def summary(self) -> ErrorSummary:
        return ErrorSummary.from_errors(self._errors)

    def _on_console_api_called(self, params: dict[str, Any]) -> None:
        call_frames = params.get("stackTrace", {}).get("callFrames", [])
        location = call_frames[0] if call_frames else {}
        self._errors.append(
            PageError(
                type="console",
                level=_CONSOLE_LEVELS.get(params.get("type", ""), "info"),
                message=" ".join(_remote_object_text(arg) for arg in params.get("args", [])),
                source=location.get("url") or None,
                line=location.get("lineNumber"),
                column=location.get("columnNumber"),
                timestamp=_now(),
            )
        )

    def _on_exception_thrown(self, params: dict[str, Any]) -> None:
        details = params.get("exceptionDetails", {})
        description = details.get("exception", {}).get("description")
        # the description is the full stack; its first line is "Error: message"
        message = description.splitlines()[0] if description else details.get("text", "")
        self._errors.append(
            PageError(
                type="javascript",
                level="error",
                message=message,
                source=details.get("url") or None,
                line=details.get("lineNumber"),
                column=details.get("columnNumber"),
                timestamp=_now(),
            )
        )

    def _on_request_will_be_sent(self, params: dict[str, Any]) -> None:
        self._request_urls[params["requestId"]] = params["request"]["url"]

    def _on_response_received(self, params: dict[str, Any]) -> None:
        response = params["response"]
        status = int(response["status"])
        if params.get("type") == "Document" and params.get("frameId") == self._main_frame_id:
            self.status_code = status

        if _is_ok_status(status):
            return
        self._errors.append(
            PageError(
                type="network",
                level="error" if status >= 500 else "warning",
                message=f"HTTP {status} {response.get('statusText', '')}".rstrip(),
                url=response["url"],
                status_code=status,
                timestamp=_now(),
            )
        )

    def _on_loading_failed(self, params: dict[str, Any]) -> None:
        error_text = params.get("errorText", "")
        is_cors = "CORS" in error_text or "corsErrorStatus" in params
        url = self._request_urls.get(params["requestId"])
        logger.debug("Request to %s failed: %s", url, error_text)
        self._errors.append(
            PageError(
                type="security" if is_cors else "network",
                level="error",
                message=error_text,
                url=url,
                timestamp=_now(),
            )
        )
