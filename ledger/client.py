"""Contract client for the transport registry."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Mapping, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from models.records import TransportRecord
from services.aggregator import TransportSummary
from services.exceptions import LedgerSubmitFailed, UpstreamUnavailable, ValidationError
from settings import get_settings

logger = logging.getLogger(__name__)

# Positions inside the `batches(id)` return tuple and its transport struct.
_TRANSPORT_INDEX = 4
_PICKUP_INDEX = 1
_DELIVERY_INDEX = 2


def contract_batch_id(batch_id: Any) -> int:
    """Batch ids are ``uint256`` on chain; accept ints and numeric strings."""
    try:
        value = int(str(batch_id).strip())
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"batchId must be numeric, got {batch_id!r}") from exc
    if value < 0:
        raise ValidationError(f"batchId must not be negative, got {batch_id!r}")
    return value


def _transport_record(raw: Any) -> TransportRecord:
    if isinstance(raw, Mapping):
        transport = raw.get("transport") or {}
        return TransportRecord(
            pickup_timestamp=int(transport.get("pickupTimestamp") or 0),
            delivery_timestamp=int(transport.get("deliveryTimestamp") or 0),
        )
    transport = raw[_TRANSPORT_INDEX]
    return TransportRecord(
        pickup_timestamp=int(transport[_PICKUP_INDEX] or 0),
        delivery_timestamp=int(transport[_DELIVERY_INDEX] or 0),
    )


def revert_reason(exc: ContractLogicError) -> str:
    # ContractLogicError packs (message, data) into args; the message is the revert string.
    return getattr(exc, "message", None) or str(exc)


def load_abi(path: str | Path) -> list[dict[str, Any]]:
    return json.loads(Path(path).read_text(encoding="utf-8"))


class LedgerClient:
    """Reads transport timestamps and submits arrival anchors.

    Submission returns as soon as the transaction is broadcast;
    :meth:`wait_for_confirmation` is separate so callers can await it inline
    or hand it to a background worker.
    """

    def __init__(
        self,
        web3: Any,
        contract: Any,
        account: Optional[Any] = None,
        confirmation_timeout: float = 120.0,
    ) -> None:
        self.web3 = web3
        self.contract = contract
        self.account = account
        self.confirmation_timeout = confirmation_timeout
        # Serializes nonce lookup and broadcast from the single signing account.
        self._send_lock = Lock()

    def fetch_transport_record(self, batch_id: Any) -> TransportRecord:
        batch = contract_batch_id(batch_id)
        try:
            raw = self.contract.functions.batches(batch).call()
        except ContractLogicError as exc:
            raise LedgerSubmitFailed(revert_reason(exc)) from exc
        except (Web3Exception, OSError) as exc:
            logger.warning(
                "Ledger read failed", extra={"batch_id": batch_id, "reason": str(exc)}
            )
            raise UpstreamUnavailable(f"Ledger unavailable: {exc}") from exc
        return _transport_record(raw)

    def fetch_pickup_timestamp(self, batch_id: Any) -> int:
        return self.fetch_transport_record(batch_id).pickup_timestamp

    def submit_summary(
        self, batch_id: Any, arrival_lat: str, arrival_lng: str, summary: TransportSummary
    ) -> str:
        call = self.contract.functions.anchorTransportSummary(
            contract_batch_id(batch_id),
            str(arrival_lat),
            str(arrival_lng),
            summary.as_contract_tuple(),
        )
        return self._transact(call, batch_id)

    def submit_digest(self, batch_id: Any, digest: bytes, period_end: int) -> str:
        call = self.contract.functions.storeSensorHash(
            contract_batch_id(batch_id), digest, int(period_end)
        )
        return self._transact(call, batch_id)

    def wait_for_confirmation(self, tx_hash: str) -> str:
        """Block until the transaction is mined; return its hash or raise if it reverted."""
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout
            )
        except TimeExhausted as exc:
            raise UpstreamUnavailable(
                f"Transaction {tx_hash} not confirmed within {self.confirmation_timeout:g}s"
            ) from exc
        except (Web3Exception, OSError) as exc:
            raise UpstreamUnavailable(f"Ledger unavailable: {exc}") from exc

        if receipt["status"] != 1:
            raise LedgerSubmitFailed(f"Transaction {tx_hash} reverted")
        return Web3.to_hex(receipt["transactionHash"])

    def _transact(self, call: Any, batch_id: Any) -> str:
        if self.account is None:
            raise UpstreamUnavailable("Ledger signing key is not configured")
        try:
            with self._send_lock:
                nonce = self.web3.eth.get_transaction_count(self.account.address, "pending")
                transaction = call.build_transaction(
                    {"from": self.account.address, "nonce": nonce}
                )
                signed = self.account.sign_transaction(transaction)
                tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as exc:
            logger.error(
                "Ledger rejected transaction",
                extra={"batch_id": batch_id, "reason": revert_reason(exc)},
            )
            raise LedgerSubmitFailed(revert_reason(exc)) from exc
        except (Web3Exception, OSError) as exc:
            logger.error("Ledger submission failed", extra={"batch_id": batch_id, "reason": str(exc)})
            raise UpstreamUnavailable(f"Ledger unavailable: {exc}") from exc
        return Web3.to_hex(tx_hash)


@lru_cache
def build_default_ledger() -> LedgerClient:
    settings = get_settings()
    if not settings.rpc_url or not settings.contract_address:
        raise UpstreamUnavailable("Ledger is not configured (RPC_URL / CONTRACT_ADDRESS)")

    web3 = Web3(
        Web3.HTTPProvider(settings.rpc_url, request_kwargs={"timeout": settings.http_timeout})
    )
    contract = web3.eth.contract(
        address=Web3.to_checksum_address(settings.contract_address),
        abi=load_abi(settings.contract_abi_path),
    )
    account = web3.eth.account.from_key(settings.private_key) if settings.private_key else None
    return LedgerClient(
        web3=web3,
        contract=contract,
        account=account,
        confirmation_timeout=settings.confirmation_timeout,
    )
