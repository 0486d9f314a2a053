"""
ledger_service.py — web3.py client for the carbon-credit system contract.

The contract owns every business rule (tier pools, reputation, BCT pricing);
this module only wraps the calls the claim service needs:

  - reads:   firm registration, per-tier credit counts, pool status, credits
  - writes:  registerFirm, createTCO2Credit

Uses an explicit LedgerClient instance, connected once per process and
passed to whoever needs it.
"""

import json
import logging
import math
from decimal import Decimal
from pathlib import Path

import requests as http_requests
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.logs import DISCARD

from config import TIERS
from credit_claims.errors import LedgerError, LedgerConnectionError, ValidationError

logger = logging.getLogger(__name__)

ABI_PATH = Path(__file__).parent / "contract_abi.json"

# web3 surfaces RPC failures as Web3Exception (v6+), ValueError (older JSON-RPC
# error responses) or the underlying requests exception.
_LEDGER_FAILURES = (Web3Exception, ValueError, http_requests.RequestException)


def load_abi() -> list:
    return json.loads(ABI_PATH.read_text(encoding="utf-8"))


def to_checksum(address: str) -> str:
    if not address or not Web3.is_address(address):
        raise ValidationError(f"Invalid account address: {address!r}")
    return Web3.to_checksum_address(address)


def check_tier(tier: str) -> str:
    if tier not in TIERS:
        raise ValidationError(f"Unknown tier {tier!r}; expected one of {', '.join(TIERS)}")
    return tier


class LedgerClient:
    """Connection to one deployed contract on one JSON-RPC node."""

    def __init__(self, w3: Web3, contract, gas_multiplier: float = 1.5, receipt_timeout: float = 120):
        self.w3 = w3
        self.contract = contract
        self.gas_multiplier = gas_multiplier
        self.receipt_timeout = receipt_timeout

    @classmethod
    def connect(
        cls,
        rpc_url: str,
        contract_address: str,
        gas_multiplier: float = 1.5,
        timeout: float = 120,
    ) -> "LedgerClient":
        if not Web3.is_address(contract_address):
            raise LedgerConnectionError(f"Invalid contract address: {contract_address!r}")

        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        try:
            if not w3.is_connected():
                raise LedgerConnectionError(f"JSON-RPC node not reachable at {rpc_url}")
            address = Web3.to_checksum_address(contract_address)
            code = w3.eth.get_code(address)
        except _LEDGER_FAILURES as e:
            raise LedgerConnectionError(f"Connection to {rpc_url} failed: {e}") from e

        if not code:
            raise LedgerConnectionError(f"No contract found at {address}")

        contract = w3.eth.contract(address=address, abi=load_abi())
        logger.info("Connected to ledger at %s (contract %s)", rpc_url, address)
        return cls(w3, contract, gas_multiplier=gas_multiplier, receipt_timeout=timeout)

    # ──────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────

    def _call(self, name: str, *args):
        try:
            return getattr(self.contract.functions, name)(*args).call()
        except _LEDGER_FAILURES as e:
            raise LedgerError(f"{name} failed: {e}") from e

    def is_account_registered(self, account: str) -> bool:
        return bool(self._call("isFirmRegistered", to_checksum(account)))

    def get_credits_per_tier(self, account: str) -> dict[str, dict]:
        """Owned and available TCO2 credit counts for each tier."""
        address = to_checksum(account)
        credits = {}
        for tier in TIERS:
            credits[tier] = {
                "owned": int(self._call("getFirmCreditsPerTier", address, tier)),
                "available": int(self._call("getFirmAvailableTCO2PerTier", address, tier)),
            }
        return credits

    def get_tier_pool_status(self, tier: str) -> dict:
        general, priority, capacity, so_far, rate = self._call("getTierPoolStatus", check_tier(tier))
        return {
            "tier": tier,
            "general_pool_count": int(general),
            "priority_reserve_count": int(priority),
            "total_capacity": int(capacity),
            "total_so_far": int(so_far),
            # contract stores the rate in hundredths
            "conversion_rate": Decimal(int(rate)) / 100,
        }

    def get_tier_pool_counts(self, tier: str) -> dict:
        general, priority = self._call("getTierPoolCounts", check_tier(tier))
        return {
            "general_pool_count": int(general),
            "priority_reserve_count": int(priority),
        }

    def get_all_tier_pool_counts(self) -> dict[str, dict]:
        return {tier: self.get_tier_pool_counts(tier) for tier in TIERS}

    def get_credit(self, credit_id: int) -> dict:
        cid, tier, location, coordinates, owner, is_retired = self._call("getTCO2Credit", int(credit_id))
        return {
            "id": int(cid),
            "tier": tier,
            "location": location,
            "coordinates": list(coordinates),
            "owner": owner,
            "is_retired": bool(is_retired),
        }

    def get_reputation(self, account: str) -> int | None:
        """Display-only read; None (with a warning) when the node can't answer."""
        try:
            return int(self._call("getFirmReputation", to_checksum(account)))
        except LedgerError as e:
            logger.warning("Reputation lookup failed for %s: %s", account, e)
            return None

    def get_bct_balance(self, account: str) -> int | None:
        """Display-only read; None (with a warning) when the node can't answer."""
        try:
            return int(self._call("getFirmBCTBalance", to_checksum(account)))
        except LedgerError as e:
            logger.warning("BCT balance lookup failed for %s: %s", account, e)
            return None

    # ──────────────────────────────────────────────
    # Writes
    # ──────────────────────────────────────────────

    def _transact(self, name: str, sender: str, *args):
        try:
            fn = getattr(self.contract.functions, name)(*args)
            gas = fn.estimate_gas({"from": sender})
            tx_hash = fn.transact({
                "from": sender,
                "gas": math.ceil(gas * self.gas_multiplier),
                "gasPrice": self.w3.eth.gas_price,  # legacy (type 0) transaction
            })
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout,
            )
        except _LEDGER_FAILURES as e:
            raise LedgerError(f"{name} failed: {e}") from e

        if receipt["status"] != 1:
            raise LedgerError(f"{name} reverted in tx {Web3.to_hex(tx_hash)}")
        return receipt

    def register_account(self, account: str) -> str:
        """Register a firm; returns the transaction hash."""
        address = to_checksum(account)
        if self.is_account_registered(address):
            raise ValidationError(f"Account {address} is already registered")
        receipt = self._transact("registerFirm", address)
        logger.info("Registered firm %s", address)
        return Web3.to_hex(receipt["transactionHash"])

    def create_credit(self, account: str, tier: str, location: str, coordinates: list[str]) -> int | None:
        """
        Create one TCO2 credit owned by `account`.

        Returns the new credit id from the CreditCreatedByFirm event, or None
        when the receipt carries no such event.
        """
        address = to_checksum(account)
        receipt = self._transact("createTCO2Credit", address, tier, location, coordinates)
        events = self.contract.events.CreditCreatedByFirm().process_receipt(receipt, errors=DISCARD)
        if not events:
            logger.warning(
                "createTCO2Credit tx %s emitted no CreditCreatedByFirm event",
                Web3.to_hex(receipt["transactionHash"]),
            )
            return None
        credit_id = int(events[0]["args"]["creditId"])
        logger.info("Created TCO2 credit %d (%s, %s) for %s", credit_id, tier, location, address)
        return credit_id
