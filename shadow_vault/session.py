"""Vault session context.

Holds the one piece of shared state in the engine: the session key. The key
is derived at most once per session; concurrent requests share a single
in-flight derivation. ``close()`` is the teardown used on sign-out.
"""
import asyncio
import logging
import time
import uuid
from typing import Optional

from .vault.calls import with_timeout
from .vault.config import VaultConfig
from .vault.crypto import DerivedKey, SecretMaterial, derive_key, normalize_address
from .vault.exceptions import DerivationError
from .vault.interfaces import KeyExporter, Signer

logger = logging.getLogger("shadow_vault")


class VaultSession:
    """Session-scoped key holder for one wallet address.

    The signer must be deterministic for the fixed signing message. When it
    is not, the first successfully derived key is kept for the session and
    never re-derived.
    """

    def __init__(
        self,
        address: str,
        signer: Signer,
        config: VaultConfig,
        key_exporter: Optional[KeyExporter] = None,
        id: Optional[str] = None,
    ) -> None:
        self._address = normalize_address(address)
        self._signer = signer
        self._exporter = key_exporter
        self._config = config
        self._id = id or uuid.uuid4().hex
        self._key: Optional[DerivedKey] = None
        self._pending: Optional[asyncio.Task] = None
        self._closed = False
        self._created = int(time.time())

    def __repr__(self) -> str:
        return (
            f'<Vault-Session [{self._id}] address={self._address} '
            f'active={self.active}, closed={self._closed}>'
        )

    # --- Properties ---

    @property
    def session_id(self) -> str:
        return self._id

    @property
    def address(self) -> str:
        return self._address

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def created(self) -> int:
        return self._created

    @property
    def active(self) -> bool:
        """True once a key has been derived and until the session closes."""
        return self._key is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    # --- Key lifecycle ---

    async def _obtain_secret(self) -> SecretMaterial:
        if self._config.allow_key_export and self._exporter is not None:
            logger.warning(
                "Deriving session key from exported private key for %s (dev only)",
                self._address,
            )
            exported = await with_timeout(
                self._exporter.export_private_key(),
                self._config.signer_timeout,
                "private key export",
            )
            return SecretMaterial.private_key(exported)
        signature = await with_timeout(
            self._signer.sign_message(self._config.signing_message),
            self._config.signer_timeout,
            "wallet signature",
        )
        return SecretMaterial.signature(signature)

    async def _derive(self) -> DerivedKey:
        secret = await self._obtain_secret()
        return derive_key(secret, self._address)

    def _derivation_done(self, task: asyncio.Task) -> None:
        # a failed derivation may have no waiter left; retrieve it and forget it
        if task.cancelled() or task.exception() is not None:
            if self._pending is task:
                self._pending = None

    async def get_key(self) -> DerivedKey:
        """Return the session key, deriving it on first use.

        Raises:
            DerivationError: If the session is closed or derivation fails.
            OperationTimeout: If the signer does not answer in time.
        """
        if self._closed:
            raise DerivationError("Vault session is closed")
        if self._key is not None:
            return self._key
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._derive())
            self._pending.add_done_callback(self._derivation_done)
        task = self._pending
        try:
            # shield: one waiter being cancelled must not cancel the shared derivation
            key = await asyncio.shield(task)
        except asyncio.CancelledError:
            if self._closed:
                raise DerivationError("Vault session was closed during key derivation") from None
            raise
        except Exception:
            if self._pending is task:
                self._pending = None
            raise
        if self._closed:
            raise DerivationError("Vault session was closed during key derivation")
        if self._key is None:
            self._key = key
            self._pending = None
            logger.info(
                "Vault session %s key ready for %s (preview %s)",
                self._id, self._address, key.preview(),
            )
        return self._key

    def close(self) -> None:
        """Discard the key and refuse further key requests (sign-out)."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        self._key = None
        self._closed = True
        logger.info("Vault session %s closed for %s", self._id, self._address)

    async def __aenter__(self) -> "VaultSession":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()
