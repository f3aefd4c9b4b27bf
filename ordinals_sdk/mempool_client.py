"""REST client for mempool.space/Esplora style APIs.

The builders never touch the network; this client is the default
collaborator the workflow layer and CLI use to publish signed transactions
and look up recommended fee rates.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Protocol

import requests
from requests import RequestException, Response

from .config import MempoolConfig, load_config

logger = logging.getLogger(__name__)


class MempoolTransportError(RuntimeError):
    """Raised when the API is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BroadcastError(RuntimeError):
    """Raised when the backing node rejects a transaction."""

    def __init__(self, message: str, raw_tx: str | None = None) -> None:
        super().__init__(f"Broadcast rejected: {message}")
        self.message = message
        self.raw_tx = raw_tx


class TransactionBroadcaster(Protocol):
    """Collaborator that publishes a signed transaction and returns its txid."""

    def broadcast(self, raw_tx: str) -> str:
        ...


def format_broadcast_hint(error: BroadcastError) -> str | None:
    """Return a short remediation hint for common node rejections."""

    message = error.message.lower()
    if "min relay fee not met" in message or "mempool min fee not met" in message:
        return "The fee rate is below the node's relay policy. Rebuild with a higher --fee-rate."
    if "bad-txns-inputs-missingorspent" in message or "missing inputs" in message:
        return "An input is unknown or already spent. Wait for the commit to propagate or refresh your UTXOs."
    if "dust" in message:
        return "An output is below the node's dust threshold. Raise --postage or the commit amount."
    if "non-mandatory-script-verify-flag" in message:
        return "A signature failed verification. Check that the signing key owns every input."
    return None


class MempoolClient:
    """Thin client for ``POST /tx`` and ``GET /v1/fees/recommended``."""

    def __init__(self, config: MempoolConfig) -> None:
        self.config = config
        self._session = requests.Session()

    @classmethod
    def from_env(cls) -> "MempoolClient":
        """Instantiate a client using environment variables or config file."""

        return cls(load_config().mempool)

    def broadcast(self, raw_tx: str) -> str:
        """Publish ``raw_tx`` and return the txid reported by the API."""

        logger.debug("Broadcasting %d-byte transaction", len(raw_tx) // 2)
        response = self._request("POST", "tx", data=raw_tx, headers={"content-type": "text/plain"})
        if response.status_code == 400:
            raise BroadcastError(response.text.strip(), raw_tx=raw_tx)
        self._raise_for_status(response)
        txid = response.text.strip()
        logger.info("Broadcast accepted: %s", txid)
        return txid

    def recommended_fees(self) -> Dict[str, Any]:
        response = self._request("GET", "v1/fees/recommended")
        self._raise_for_status(response)
        try:
            payload = response.json()
        except ValueError as exc:
            logger.debug("Fee response parse error: %s", response.text, exc_info=True)
            raise MempoolTransportError("Mempool API returned malformed JSON") from exc
        if not isinstance(payload, dict):
            raise MempoolTransportError("Mempool API returned an unexpected fee payload")
        return payload

    def _request(self, method: str, path: str, **kwargs: Any) -> Response:
        url = self.config.url(path)
        try:
            return self._session.request(method, url, timeout=self.config.timeout, **kwargs)
        except RequestException as exc:
            logger.error(
                "Mempool API connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise MempoolTransportError(
                f"Could not reach {url}. Check the mempool base_url in ~/.ordinals-sdk.yaml "
                "or ORDINALS_MEMPOOL_URL."
            ) from exc

    def _raise_for_status(self, response: Response) -> None:
        if not response.ok:
            logger.error("Mempool API HTTP error %s from %s", response.status_code, response.url)
            logger.error("Mempool API error body: %s", response.text)
            raise MempoolTransportError(
                f"Mempool API returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
