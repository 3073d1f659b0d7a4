"""
Message protocol between UI surfaces and the vault engine.

Each request is a mapping with a ``type`` and a payload; each produces
exactly one response mapping. Types are accepted in either the wire form
(``UNLOCK_VAULT``) or the operation form (``UnlockVault``).
"""
import re
import logging
from typing import Any, Optional
from collections.abc import Awaitable, Callable, Mapping

from .vault.controller import VaultController
from .vault.exceptions import VaultError
from .vault.models import LockState

logger = logging.getLogger("chromapass.handlers")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

Handler = Callable[[Mapping[str, Any]], Awaitable[Any]]


def normalize_type(name: str) -> str:
    """``CheckLockState`` -> ``CHECK_LOCK_STATE``; wire names are unchanged."""
    if name.isupper():
        return name
    return _CAMEL_BOUNDARY.sub("_", name).upper()


def _text(mapping: Any, name: str, default: Optional[str] = None) -> str:
    """Read a string field; anything else is a malformed request."""
    if not isinstance(mapping, Mapping):
        raise TypeError("payload must be a mapping")
    value = mapping[name] if default is None else mapping.get(name) or default
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string")
    return value


class MessageDispatcher:
    """Routes protocol messages to a VaultController."""

    def __init__(self, controller: VaultController):
        self.controller = controller
        self._handlers: dict[str, Handler] = {
            "CHECK_LOCK_STATE": self.check_lock_state,
            "SET_MASTER_PASSWORD": self.set_master_password,
            "UNLOCK_VAULT": self.unlock_vault,
            "LOCK_VAULT": self.lock_vault,
            "CHANGE_MASTER_PASSWORD": self.change_master_password,
            "GET_CREDENTIALS": self.get_credentials,
            "DECRYPT_PASSWORD": self.decrypt_password,
            "SAVE_CANDIDATE": self.save_candidate,
            "CHECK_PENDING_SAVE": self.check_pending_save,
            "CONFIRM_SAVE": self.confirm_save,
            "CLEAR_CANDIDATE": self.clear_candidate,
            "LIST_CREDENTIALS": self.list_credentials,
            "DELETE_CREDENTIAL": self.delete_credential,
            "GENERATE_PASSWORD": self.generate_password,
        }

    @property
    def message_types(self) -> list[str]:
        return list(self._handlers.keys())

    async def dispatch(self, request: Mapping[str, Any]) -> Optional[dict]:
        """Handle one request and return its response."""
        name = request.get("type") if isinstance(request, Mapping) else None
        handler = self._handlers.get(normalize_type(name)) if isinstance(name, str) else None
        if handler is None:
            logger.warning("Unknown request type: %r", name)
            return {"error": "Unknown request type"}
        try:
            return await handler(request)
        except VaultError as err:
            return {"success": False, "error": err.message}
        except (KeyError, TypeError, ValueError) as err:
            # never echo the exception text: it may carry payload values
            logger.warning("Invalid %s request: %s", name, type(err).__name__)
            return {"success": False, "error": "Invalid request"}

    # ------------------------------------------------------------------
    # Lock state & auth
    # ------------------------------------------------------------------

    async def check_lock_state(self, request: Mapping[str, Any]) -> dict:
        state = await self.controller.lock_state()
        return {
            "setup": state != LockState.UNINITIALIZED,
            "unlocked": state == LockState.UNLOCKED,
        }

    async def set_master_password(self, request: Mapping[str, Any]) -> dict:
        await self.controller.setup(_text(request, "password"))
        return {"success": True}

    async def unlock_vault(self, request: Mapping[str, Any]) -> dict:
        await self.controller.unlock(_text(request, "password"))
        return {"success": True}

    async def lock_vault(self, request: Mapping[str, Any]) -> dict:
        await self.controller.lock()
        return {"success": True}

    async def change_master_password(self, request: Mapping[str, Any]) -> dict:
        report = await self.controller.rotate_master_password(
            _text(request, "oldPassword"), _text(request, "newPassword"),
        )
        return {"success": True, "degraded": report.degraded}

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def get_credentials(self, request: Mapping[str, Any]) -> dict:
        result = await self.controller.fetch_matches(_text(request, "domain"))
        response = {
            "success": bool(result.matches),
            "matches": [r.model_dump(mode="json") for r in result.matches],
        }
        if result.username is not None:
            response["username"] = result.username
            response["password"] = result.password
        return response

    async def decrypt_password(self, request: Mapping[str, Any]) -> dict:
        password = await self.controller.decrypt_one(request["encryptedData"])
        return {"success": True, "password": password}

    async def list_credentials(self, request: Mapping[str, Any]) -> dict:
        records = await self.controller.list_credentials(_text(request, "filter", default=""))
        return {
            "success": True,
            "credentials": [r.model_dump(mode="json") for r in records],
        }

    async def delete_credential(self, request: Mapping[str, Any]) -> dict:
        return {"success": await self.controller.delete_credential(_text(request, "id"))}

    async def generate_password(self, request: Mapping[str, Any]) -> dict:
        length = int(request.get("length") or 16)
        return {"success": True, "password": self.controller.generate_password(length)}

    # ------------------------------------------------------------------
    # Save flow
    # ------------------------------------------------------------------

    async def save_candidate(self, request: Mapping[str, Any]) -> dict:
        payload = request["payload"]
        await self.controller.capture_candidate(
            _text(payload, "site"), _text(payload, "username"), _text(payload, "password"),
        )
        return {"success": True}

    async def check_pending_save(self, request: Mapping[str, Any]) -> Optional[dict]:
        candidate = await self.controller.peek_candidate()
        return candidate.model_dump() if candidate is not None else None

    async def confirm_save(self, request: Mapping[str, Any]) -> dict:
        payload = request["payload"]
        record = await self.controller.confirm_save(
            _text(payload, "site"),
            _text(payload, "username"),
            _text(payload, "password"),
            record_id=_text(payload, "id", default="") or None,
        )
        return {"success": True, "id": record.id}

    async def clear_candidate(self, request: Mapping[str, Any]) -> dict:
        await self.controller.dismiss_candidate()
        return {"success": True}
