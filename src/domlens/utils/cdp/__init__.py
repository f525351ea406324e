import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from playwright.async_api import CDPSession


@asynccontextmanager
async def object_group(cdp_session: CDPSession) -> AsyncGenerator[str, None]:
    """Remote objects resolved under the yielded group are released on exit."""
    group_id = str(uuid.uuid4())
    try:
        yield group_id
    finally:
        await cdp_session.send("Runtime.releaseObjectGroup", {"objectGroup": group_id})


async def call_function_on_node(
    cdp_session: CDPSession, backend_node_id: int, function_declaration: str
) -> Any:
    """Run ``function_declaration`` with the node as ``this`` and return its value."""
    async with object_group(cdp_session) as obj_group:
        resolved = await cdp_session.send(
            "DOM.resolveNode", {"backendNodeId": backend_node_id, "objectGroup": obj_group}
        )
        result = await cdp_session.send(
            "Runtime.callFunctionOn",
            {
                "functionDeclaration": function_declaration,
                "objectId": resolved["object"]["objectId"],
                "returnByValue": True,
            },
        )
    return result["result"].get("value")
