"""
Ledger Anchoring Client
=======================

Anchors artifact fingerprints on an external immutable ledger and manages
on-ledger role grants.

Implementations:
- HttpLedgerClient: JSON over HTTP to a ledger gateway (httpx, bounded timeout)
- InMemoryLedgerClient: deterministic process-local ledger (development/tests)

Clients are passed into the operations that need them; there is no global
instance inside the services. Every failure surfaces as ExternalFailure.
"""

import hashlib
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .config import LedgerMode, Settings, get_settings
from .errors import ExternalFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Anchor:
    """Ledger-assigned identifier and transaction reference for an artifact"""
    anchor_id: str
    tx_ref: str


class LedgerClient(ABC):
    """Interface every ledger backend implements"""

    @abstractmethod
    def anchor(self, case_number: str, fingerprint: str, context: Optional[Dict[str, Any]] = None) -> Anchor:
        """
        Anchor an artifact fingerprint for a case.

        Args:
            case_number: Business identifier of the owning case
            fingerprint: Content hash of the artifact
            context: kind (evidence|correction|material); for corrections also
                original_anchor_id and reason

        Raises:
            ExternalFailure: the ledger rejected the call or did not answer in time
        """

    @abstractmethod
    def grant_role(self, wallet_address: str, role: str) -> str:
        """Grant a role to an address; returns the transaction reference."""

    @abstractmethod
    def revoke_role(self, wallet_address: str, role: str) -> str:
        """Revoke a role from an address; returns the transaction reference."""

    def close(self) -> None:
        pass


def _tx_ref(*parts) -> str:
    digest = hashlib.sha256(":".join(str(p) for p in parts).encode("utf-8")).hexdigest()
    return "0x" + digest


class InMemoryLedgerClient(LedgerClient):
    """Process-local ledger with monotonic anchor ids"""

    def __init__(self):
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self.anchors: Dict[str, Dict[str, Any]] = {}
        self.roles = set()

    def anchor(self, case_number: str, fingerprint: str, context: Optional[Dict[str, Any]] = None) -> Anchor:
        context = dict(context or {})
        if not case_number or not fingerprint:
            raise ExternalFailure("ledger rejected anchor: case number and fingerprint are required")

        with self._lock:
            original = context.get("original_anchor_id")
            if original is not None and str(original) not in self.anchors:
                raise ExternalFailure(f"ledger rejected anchor: unknown original anchor {original}")

            anchor_id = str(next(self._counter))
            tx_ref = _tx_ref("anchor", anchor_id, case_number, fingerprint)
            self.anchors[anchor_id] = {
                "case_number": case_number,
                "fingerprint": fingerprint,
                "tx_ref": tx_ref,
                **context,
            }
        return Anchor(anchor_id=anchor_id, tx_ref=tx_ref)

    def grant_role(self, wallet_address: str, role: str) -> str:
        with self._lock:
            self.roles.add((wallet_address.lower(), role))
            return _tx_ref("grant", wallet_address.lower(), role, len(self.roles))

    def revoke_role(self, wallet_address: str, role: str) -> str:
        with self._lock:
            self.roles.discard((wallet_address.lower(), role))
            return _tx_ref("revoke", wallet_address.lower(), role, len(self.roles))


class HttpLedgerClient(LedgerClient):
    """
    Client for a ledger gateway exposing:
        POST /anchors       {case_number, fingerprint, context} -> {anchor_id, tx_ref}
        POST /roles/grant   {address, role}                     -> {tx_ref}
        POST /roles/revoke  {address, role}                     -> {tx_ref}
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        """Close the HTTP client"""
        if self._client:
            self._client.close()
            self._client = None

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        url = f"{self.base_url}{path}"
        try:
            response = self._get_client().post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.error(f"Ledger timeout after {self.timeout}s: POST {path}")
            raise ExternalFailure("ledger request timed out")
        except httpx.HTTPStatusError as e:
            logger.error(f"Ledger HTTP error {e.response.status_code}: POST {path}")
            raise ExternalFailure(
                f"ledger returned HTTP {e.response.status_code}",
                details={"status_code": e.response.status_code},
            )
        except httpx.HTTPError as e:
            logger.error(f"Ledger transport error: POST {path}: {e}")
            raise ExternalFailure("ledger unreachable")
        except ValueError:
            logger.error(f"Ledger returned a non-JSON body: POST {path}")
            raise ExternalFailure("ledger returned a malformed response")

        if not isinstance(data, dict):
            raise ExternalFailure("ledger returned a malformed response")
        return data

    def anchor(self, case_number: str, fingerprint: str, context: Optional[Dict[str, Any]] = None) -> Anchor:
        data = self._post("/anchors", {
            "case_number": case_number,
            "fingerprint": fingerprint,
            "context": context or {},
        })
        anchor_id = data.get("anchor_id")
        tx_ref = data.get("tx_ref")
        if anchor_id is None or not tx_ref:
            raise ExternalFailure("ledger response missing anchor_id or tx_ref")
        return Anchor(anchor_id=str(anchor_id), tx_ref=str(tx_ref))

    def grant_role(self, wallet_address: str, role: str) -> str:
        data = self._post("/roles/grant", {"address": wallet_address, "role": role})
        if not data.get("tx_ref"):
            raise ExternalFailure("ledger response missing tx_ref")
        return str(data["tx_ref"])

    def revoke_role(self, wallet_address: str, role: str) -> str:
        data = self._post("/roles/revoke", {"address": wallet_address, "role": role})
        if not data.get("tx_ref"):
            raise ExternalFailure("ledger response missing tx_ref")
        return str(data["tx_ref"])


def get_ledger_client(settings: Optional[Settings] = None) -> LedgerClient:
    """Build the ledger client selected by LEDGER_MODE"""
    settings = settings or get_settings()

    if settings.ledger_mode == LedgerMode.HTTP:
        if not settings.ledger_url:
            raise ValueError("LEDGER_MODE=http requires LEDGER_URL")
        return HttpLedgerClient(
            base_url=settings.ledger_url,
            api_key=settings.ledger_api_key,
            timeout=settings.ledger_timeout_seconds,
        )

    return InMemoryLedgerClient()
