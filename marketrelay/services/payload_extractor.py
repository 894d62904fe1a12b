"""
Bundle Payload Extractor - resolves the application payload of a bundle.

Marketplace messages are JSON documents spread over the
signatureMessageFragment of every transaction in a bundle. The IOTA node
API is queried over HTTP:

    findTransactions {bundles: [bundle]}  -> hashes
    getTrytes        {hashes}             -> raw transaction trytes

Fragments are ordered by currentIndex, joined, and decoded to text.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from marketrelay.codec.trytes import TryteDecodeError, trytes_to_ascii, trytes_to_int

logger = logging.getLogger(__name__)

# Field layout of a 2673-tryte transaction
TRANSACTION_LENGTH = 2673
FRAGMENT_SLICE = slice(0, 2187)
CURRENT_INDEX_SLICE = slice(2331, 2340)
LAST_INDEX_SLICE = slice(2340, 2349)
BUNDLE_SLICE = slice(2349, 2430)

IOTA_API_HEADERS = {
    "Content-Type": "application/json",
    "X-IOTA-API-Version": "1",
    "User-Agent": "marketrelay/0.1",
}


class PayloadExtractionError(Exception):
    """Raised when a bundle payload cannot be resolved or decoded."""

    def __init__(self, bundle: str, reason: str):
        self.bundle = bundle
        self.reason = reason
        super().__init__(f"Unable to extract payload for bundle {bundle}: {reason}")


class PayloadExtractor(ABC):
    """Resolves the payload associated with a bundle reference."""

    @abstractmethod
    async def extract(self, bundle: str) -> Any:
        """Return the decoded payload, or raise PayloadExtractionError."""

    async def close(self) -> None:
        return None


@dataclass(frozen=True)
class BundleFragment:
    """The parts of a transaction needed to rebuild a bundle message."""
    current_index: int
    last_index: int
    bundle: str
    fragment: str

    @classmethod
    def from_trytes(cls, trytes: str) -> BundleFragment:
        if len(trytes) != TRANSACTION_LENGTH:
            raise TryteDecodeError(
                f"Transaction must be {TRANSACTION_LENGTH} trytes, got {len(trytes)}"
            )
        return cls(
            current_index=trytes_to_int(trytes[CURRENT_INDEX_SLICE]),
            last_index=trytes_to_int(trytes[LAST_INDEX_SLICE]),
            bundle=trytes[BUNDLE_SLICE],
            fragment=trytes[FRAGMENT_SLICE],
        )


def decode_bundle_message(fragments: list[BundleFragment]) -> Any:
    """Join fragments in index order and decode the message (JSON if possible)."""
    ordered = sorted(fragments, key=lambda f: f.current_index)
    text = trytes_to_ascii("".join(f.fragment for f in ordered))
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class IotaPayloadExtractor(PayloadExtractor):
    """
    Payload extractor backed by an IOTA node HTTP API.

    Usage:
        extractor = IotaPayloadExtractor("http://localhost:14265")
        payload = await extractor.extract(bundle_hash)
        await extractor.close()
    """

    def __init__(
        self,
        node_url: str = "http://localhost:14265",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.node_url = node_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=IOTA_API_HEADERS)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _command(self, bundle: str, body: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            resp = await client.post(self.node_url, json=body, headers=IOTA_API_HEADERS)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise PayloadExtractionError(
                bundle, f"{body['command']} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise PayloadExtractionError(bundle, f"{body['command']} request failed: {e}") from e
        except ValueError as e:
            raise PayloadExtractionError(bundle, f"{body['command']} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise PayloadExtractionError(
                bundle, f"{body['command']} returned {type(data).__name__}, expected an object"
            )
        if "error" in data:
            raise PayloadExtractionError(bundle, f"{body['command']}: {data['error']}")
        return data

    async def extract(self, bundle: str) -> Any:
        found = await self._command(bundle, {"command": "findTransactions", "bundles": [bundle]})
        hashes = found.get("hashes") or []
        if not isinstance(hashes, list):
            raise PayloadExtractionError(bundle, "findTransactions returned malformed hashes")
        if not hashes:
            raise PayloadExtractionError(bundle, "no transactions found")

        result = await self._command(bundle, {"command": "getTrytes", "hashes": hashes})
        raw = result.get("trytes") or []
        if not isinstance(raw, list) or not all(isinstance(t, str) for t in raw):
            raise PayloadExtractionError(bundle, "getTrytes returned non-string trytes")
        try:
            fragments = [BundleFragment.from_trytes(trytes) for trytes in raw]
            # Reattachments share the bundle hash; keep one transaction per index.
            by_index: dict[int, BundleFragment] = {}
            for fragment in fragments:
                if fragment.bundle == bundle:
                    by_index.setdefault(fragment.current_index, fragment)
            if not by_index:
                raise PayloadExtractionError(bundle, "no transaction trytes matched the bundle")
            payload = decode_bundle_message(list(by_index.values()))
        except TryteDecodeError as e:
            raise PayloadExtractionError(bundle, str(e)) from e

        logger.debug(f"[IOTA] Extracted payload for bundle {bundle[:12]}... ({len(by_index)} txs)")
        return payload
