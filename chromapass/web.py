"""
aiohttp transport for the vault message protocol.

    POST /vault/message   body: {"type": "...", ...}   ->  JSON response

The controller lives on the application and its inactivity timer is
stopped on application cleanup.
"""
import logging
from typing import Optional

import orjson
from aiohttp import web

from .handlers import MessageDispatcher
from .vault.config import VaultConfig
from .vault.controller import VaultController

logger = logging.getLogger("chromapass.handlers")

VAULT_DISPATCHER = web.AppKey("chromapass.dispatcher", MessageDispatcher)


def _dumps(obj) -> str:
    return orjson.dumps(obj).decode("utf-8")


async def handle_message(request: web.Request) -> web.Response:
    dispatcher: MessageDispatcher = request.app[VAULT_DISPATCHER]
    try:
        message = await request.json(loads=orjson.loads)
    except orjson.JSONDecodeError:
        return web.json_response(
            {"success": False, "error": "Invalid JSON"}, status=400, dumps=_dumps,
        )
    if not isinstance(message, dict):
        return web.json_response(
            {"success": False, "error": "Invalid request"}, status=400, dumps=_dumps,
        )
    return web.json_response(await dispatcher.dispatch(message), dumps=_dumps)


def setup_vault(
    app: web.Application,
    controller: Optional[VaultController] = None,
    path: str = "/vault/message",
) -> MessageDispatcher:
    """Attach the vault protocol endpoint to an aiohttp application."""
    if controller is None:
        controller = VaultController(config=VaultConfig.from_env())
    dispatcher = MessageDispatcher(controller)
    app[VAULT_DISPATCHER] = dispatcher
    app.router.add_post(path, handle_message)

    async def _close_vault(app: web.Application) -> None:
        await dispatcher.controller.close()

    app.on_cleanup.append(_close_vault)
    logger.debug("Vault endpoint registered at %s", path)
    return dispatcher
