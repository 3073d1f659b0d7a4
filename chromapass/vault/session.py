"""
Vault Session — In-memory key ownership and inactivity auto-lock.

The SessionManager owns the master key and the blind-save private key for
the current unlocked session:
- in-memory cache first, then the session-scoped store (restart recovery)
- every successful key access re-arms a single-shot inactivity timer
- ``lock()`` drops both keys from memory and from the session store

Security Note:
    Keys mirrored into the session store are serialized in clear; the
    session store must not outlive the unlocked session (see threat model
    in ``chromapass.vault``).
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from cryptography.hazmat.primitives.asymmetric import rsa

from .config import DEFAULT_LOCK_TIMEOUT
from .crypto import export_key, import_key, export_private_key, import_private_key

logger = logging.getLogger("chromapass.vault")

# session-scoped store keys
SESSION_MASTER_KEY = "vault_key"
SESSION_PRIVATE_KEY = "asym_private_key"
# durable store key read by UI surfaces
LOCKED_FLAG = "locked"


class SessionManager:
    """Owns the active keys of one running vault process.

    Args:
        session_store: Session-scoped key-value store.
        durable_store: Durable key-value store (``locked`` flag only).
        lock_timeout: Idle seconds before the vault locks itself.
    """

    def __init__(
        self,
        session_store: Any,
        durable_store: Any,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ):
        self._session = session_store
        self._durable = durable_store
        self._timeout = lock_timeout
        self._master_key: Optional[bytes] = None
        self._private_key: Optional[rsa.RSAPrivateKey] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._lock_task: Optional[asyncio.Task] = None
        self._listeners: list[Callable[[], Any]] = []

    def __repr__(self) -> str:
        return (
            f'<SessionManager [active:{self.is_active}, '
            f'timeout:{self._timeout}s, armed:{self.timer_armed}]>'
        )

    @property
    def is_active(self) -> bool:
        """True when a master key is held in process memory."""
        return self._master_key is not None

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    @property
    def lock_timeout(self) -> float:
        return self._timeout

    def add_lock_listener(self, callback: Callable[[], Any]) -> None:
        """Register a callable (sync or async) invoked after every lock."""
        self._listeners.append(callback)

    # ------------------------------------------------------------------
    # Inactivity timer
    # ------------------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _reset_timer(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._timeout, self._on_timeout)

    def _on_timeout(self) -> None:
        self._timer = None
        logger.info("Vault auto-locked due to inactivity (%.1fs)", self._timeout)
        self._lock_task = asyncio.ensure_future(self.lock())
        self._lock_task.add_done_callback(self._lock_done)

    def _lock_done(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Auto-lock failed: %s", task.exception())

    # ------------------------------------------------------------------
    # Key access
    # ------------------------------------------------------------------

    async def get_master_key(self) -> Optional[bytes]:
        """Return the active master key, restoring it from the session store.

        Returns:
            32-byte key, or None if the vault is locked.
        """
        if self._master_key is not None:
            self._reset_timer()
            return self._master_key
        serialized = await self._session.get(SESSION_MASTER_KEY)
        if serialized:
            try:
                self._master_key = import_key(serialized)
            except ValueError as err:
                logger.error("Discarding unreadable session master key: %s", err)
                await self._session.delete(SESSION_MASTER_KEY)
                return None
            logger.debug("Master key restored from session store")
            self._reset_timer()
            return self._master_key
        return None

    async def get_private_key(self) -> Optional[rsa.RSAPrivateKey]:
        """Return the blind-save private key, restoring it from the session store."""
        if self._private_key is not None:
            self._reset_timer()
            return self._private_key
        serialized = await self._session.get(SESSION_PRIVATE_KEY)
        if serialized:
            try:
                self._private_key = import_private_key(serialized)
            except (ValueError, TypeError) as err:
                logger.error("Discarding unreadable session private key: %s", err)
                await self._session.delete(SESSION_PRIVATE_KEY)
                return None
            logger.debug("Private key restored from session store")
            self._reset_timer()
            return self._private_key
        return None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def activate(
        self,
        master_key: bytes,
        private_key: Optional[rsa.RSAPrivateKey] = None,
    ) -> None:
        """Start (or restart) an unlocked session with the given keys."""
        self._master_key = master_key
        self._private_key = private_key
        await self._session.update({
            SESSION_MASTER_KEY: export_key(master_key),
            SESSION_PRIVATE_KEY: (
                export_private_key(private_key) if private_key is not None else None
            ),
        })
        await self._durable.set(LOCKED_FLAG, False)
        self._reset_timer()
        logger.info("Vault session activated")

    async def lock(self) -> None:
        """Discard both keys from memory and from the session store."""
        self._cancel_timer()
        self._master_key = None
        self._private_key = None
        await self._session.update({
            SESSION_MASTER_KEY: None,
            SESSION_PRIVATE_KEY: None,
        })
        await self._durable.set(LOCKED_FLAG, True)
        for callback in self._listeners:
            result = callback()
            if inspect.isawaitable(result):
                await result
        logger.info("Vault locked")

    async def close(self) -> None:
        """Stop the inactivity timer and wait for a pending auto-lock."""
        self._cancel_timer()
        if self._lock_task is not None and not self._lock_task.done():
            await self._lock_task
        self._lock_task = None
