"""
Walrus Blob Store — aiohttp client for the Walrus publisher/aggregator HTTP API.

    PUT {publisher}/v1/blobs?epochs=N   -> {"newlyCreated": {"blobObject": {"blobId": ...}}}
                                        or {"alreadyCertified": {"blobId": ...}}
    GET {aggregator}/v1/blobs/{blobId}  -> raw bytes

Envelopes are opaque bytes to this client; nothing is logged beyond blob ids
and sizes.
"""
import asyncio
import logging
from typing import Any, Optional

import aiohttp

from .config import VaultConfig
from .exceptions import (
    BlobNotFound,
    CollaboratorUnavailable,
    FormatError,
    OperationTimeout,
    RequestRejected,
)

logger = logging.getLogger("shadow_vault")


def _path(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def extract_blob_id(result: Any) -> str:
    """Pull the blob id out of a publisher response.

    Raises:
        FormatError: If neither known response shape is present.
    """
    if not isinstance(result, dict):
        raise FormatError("Walrus response is not a JSON object")
    blob_id = _path(result, "newlyCreated", "blobObject", "blobId") or _path(
        result, "alreadyCertified", "blobId"
    )
    if isinstance(blob_id, str) and blob_id:
        return blob_id
    raise FormatError("Walrus response carries no blob id")


class WalrusBlobStore:
    """Blob store backed by a Walrus publisher and aggregator.

    The caller owns the ``aiohttp.ClientSession`` lifecycle when one is
    passed in; otherwise use the instance as an async context manager.
    """

    def __init__(
        self,
        publisher_url: str,
        aggregator_url: str,
        epochs: int = 5,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._publisher = publisher_url.rstrip("/")
        self._aggregator = aggregator_url.rstrip("/")
        self._epochs = epochs
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_config(cls, config: VaultConfig, session: Optional[aiohttp.ClientSession] = None) -> "WalrusBlobStore":
        return cls(
            publisher_url=config.walrus_publisher_url,
            aggregator_url=config.walrus_aggregator_url,
            epochs=config.walrus_epochs,
            timeout=config.blob_timeout,
            session=session,
        )

    async def __aenter__(self) -> "WalrusBlobStore":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(
                "WalrusBlobStore has no client session; use 'async with' "
                "or pass a session"
            )
        return self._session

    async def put(self, data: bytes) -> str:
        """Upload ``data`` and return its blob id."""
        url = f"{self._publisher}/v1/blobs"
        try:
            async with self._client().put(
                url,
                data=data,
                params={"epochs": str(self._epochs)},
                headers={"Content-Type": "application/octet-stream"},
                timeout=self._timeout,
            ) as resp:
                if resp.status >= 500:
                    raise CollaboratorUnavailable(
                        f"Walrus publisher returned {resp.status}"
                    )
                if resp.status >= 400:
                    raise RequestRejected(
                        f"Walrus publisher rejected upload: {resp.status} {resp.reason}"
                    )
                result = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            raise OperationTimeout("Walrus publisher request timed out") from None
        except aiohttp.ClientError as err:
            raise CollaboratorUnavailable(
                f"Walrus publisher unreachable: {type(err).__name__}"
            ) from err
        except ValueError as err:
            raise FormatError("Walrus publisher returned invalid JSON") from err
        blob_id = extract_blob_id(result)
        logger.debug("Walrus put: %d bytes -> blob %s", len(data), blob_id)
        return blob_id

    async def get(self, pointer: str) -> bytes:
        """Download the blob named by ``pointer``."""
        url = f"{self._aggregator}/v1/blobs/{pointer}"
        try:
            async with self._client().get(url, timeout=self._timeout) as resp:
                if resp.status == 404:
                    raise BlobNotFound(f"Blob {pointer} not found")
                if resp.status >= 500:
                    raise CollaboratorUnavailable(
                        f"Walrus aggregator returned {resp.status}"
                    )
                if resp.status >= 400:
                    raise RequestRejected(
                        f"Walrus aggregator rejected read: {resp.status} {resp.reason}"
                    )
                data = await resp.read()
        except asyncio.TimeoutError:
            raise OperationTimeout("Walrus aggregator request timed out") from None
        except aiohttp.ClientError as err:
            raise CollaboratorUnavailable(
                f"Walrus aggregator unreachable: {type(err).__name__}"
            ) from err
        logger.debug("Walrus get: blob %s -> %d bytes", pointer, len(data))
        return data
