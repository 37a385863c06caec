"""web3.py adapters for PixelPonyV1 and the referral contract on Base.

Web3EventSource reads RaceExecuted logs. Web3ReferralLedger wraps the
referral contract and the signing account: lookups, pending balances,
funder balance, and the payable fundRewards batch.

Library exceptions are translated at this boundary so the engine only sees
NetworkError / RevertError.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Any, Iterator

import aiohttp
import bittensor as bt
from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.exceptions import (
    ContractLogicError,
    TimeExhausted,
    TransactionNotFound,
    Web3RPCError,
)

from ponyref.stats.models import ContractStats, ReferrerInfo
from ponyref.worker.errors import NetworkError, RevertError
from ponyref.worker.models import FundingPlan, FundingReceipt, RaceEvent

from .abi import PIXEL_PONY_ABI, REFERRAL_ABI

# Node responses meaning an identical signed transaction was already broadcast.
_ALREADY_BROADCAST = ("already known", "known transaction")
# Nonce consumed. Either by our own transaction or by a different one.
_NONCE_USED = "nonce too low"


def revert_reason(error: BaseException) -> str:
    """Best-effort revert reason from a web3 exception."""
    message = getattr(error, "message", None)
    if message:
        return str(message)
    return str(error) or type(error).__name__


@contextmanager
def translate_errors(action: str, rpc_errors_revert: bool = False) -> Iterator[None]:
    """Map web3/aiohttp exceptions onto the worker's error taxonomy."""
    try:
        yield
    except ContractLogicError as e:
        raise RevertError(revert_reason(e)) from e
    except TimeExhausted as e:
        raise NetworkError(f"{action}: timed out: {e}") from e
    except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError) as e:
        raise NetworkError(f"{action}: {type(e).__name__}: {e}") from e
    except Web3RPCError as e:
        if rpc_errors_revert:
            raise RevertError(revert_reason(e)) from e
        raise NetworkError(f"{action}: rpc error: {revert_reason(e)}") from e


def connect(rpc_url: str, timeout: float = 30.0) -> AsyncWeb3:
    """Async web3 client over HTTP JSON-RPC."""
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))


class Web3EventSource:
    """RaceExecuted log reader."""

    def __init__(self, w3: AsyncWeb3, pixel_pony_address: str):
        self.w3 = w3
        self.contract = w3.eth.contract(
            address=Web3.to_checksum_address(pixel_pony_address), abi=PIXEL_PONY_ABI,
        )

    async def get_current_height(self) -> int:
        with translate_errors("get_block_number"):
            return int(await self.w3.eth.block_number)

    async def query_logs(self, from_block: int, to_block: int) -> list[RaceEvent]:
        with translate_errors("get_logs"):
            logs = await self.contract.events.RaceExecuted.get_logs(
                from_block=from_block, to_block=to_block,
            )

        events = [
            RaceEvent(
                race_id=int(log["args"]["raceId"]),
                player=str(log["args"]["player"]),
                payout=int(log["args"]["payout"]),
                won=bool(log["args"]["won"]),
                block_number=int(log["blockNumber"]),
                log_index=int(log["logIndex"]),
            )
            for log in logs
        ]
        events.sort(key=lambda e: (e.block_number, e.log_index))
        return events


class Web3ReferralLedger:
    """Referral contract accessor bound to the funding account."""

    def __init__(
        self,
        w3: AsyncWeb3,
        referral_address: str,
        private_key: str | None = None,
        gas_limit: int = 500_000,
        receipt_timeout: float = 180.0,
    ):
        self.w3 = w3
        self.contract = w3.eth.contract(
            address=Web3.to_checksum_address(referral_address), abi=REFERRAL_ABI,
        )
        self.account = Account.from_key(private_key) if private_key else None
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout
        self._chain_id: int | None = None
        # Signed but unconfirmed disbursement, rebroadcast verbatim on retry.
        self._inflight: tuple[FundingPlan, bytes, Any] | None = None

    @property
    def address(self) -> str:
        if self.account is None:
            raise RuntimeError("ledger opened read-only (no private key)")
        return self.account.address

    # -- Reads --

    async def has_beneficiary(self, player: str) -> bool:
        with translate_errors("hasReferrer"):
            return bool(await self.contract.functions.hasReferrer(player).call())

    async def beneficiary_of(self, player: str) -> str:
        with translate_errors("referrerOf"):
            return str(await self.contract.functions.referrerOf(player).call())

    async def pending_balance(self, beneficiary: str) -> int:
        with translate_errors("pendingRewards"):
            return int(await self.contract.functions.pendingRewards(beneficiary).call())

    async def available_balance(self) -> int:
        with translate_errors("get_balance"):
            return int(await self.w3.eth.get_balance(self.address))

    async def referrer_info(self, referrer: str) -> ReferrerInfo:
        with translate_errors("getReferrerInfo"):
            pending, can_claim = await self.contract.functions.getReferrerInfo(referrer).call()
        return ReferrerInfo(pending=int(pending), can_claim=bool(can_claim))

    async def contract_stats(self) -> ContractStats:
        with translate_errors("getStats"):
            funded, claimed, referrers, balance = await self.contract.functions.getStats().call()
        return ContractStats(
            total_rewards_funded=int(funded),
            total_rewards_claimed=int(claimed),
            total_referrers=int(referrers),
            contract_balance=int(balance),
        )

    # -- Funding --

    async def fund(self, plan: FundingPlan) -> FundingReceipt:
        """Submit fundRewards(plan) with value=plan.total and wait for the receipt."""
        if self._inflight is not None and self._inflight[0] == plan:
            _, raw_tx, tx_hash = self._inflight
            bt.logging.info({"referral_funding": {"status": "rebroadcast", "tx_hash": Web3.to_hex(tx_hash)}})
        else:
            raw_tx, tx_hash = await self._sign(plan)
            self._inflight = (plan, raw_tx, tx_hash)

        await self._broadcast(raw_tx, tx_hash)

        bt.logging.info({
            "referral_funding": {
                "status": "waiting_for_confirmation",
                "tx_hash": Web3.to_hex(tx_hash),
            }
        })
        with translate_errors("wait_for_transaction_receipt"):
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout,
            )

        self._inflight = None
        tx_hex = Web3.to_hex(tx_hash)
        if int(receipt["status"]) != 1:
            raise RevertError("fundRewards reverted on chain", tx_hash=tx_hex)

        return FundingReceipt(
            tx_hash=tx_hex,
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt["gasUsed"]),
            status=int(receipt["status"]),
        )

    async def _broadcast(self, raw_tx: bytes, tx_hash: Any) -> None:
        with translate_errors("send_raw_transaction", rpc_errors_revert=True):
            try:
                await self.w3.eth.send_raw_transaction(raw_tx)
                return
            except Web3RPCError as e:
                message = revert_reason(e).lower()
                if any(s in message for s in _ALREADY_BROADCAST):
                    return
                if _NONCE_USED not in message:
                    self._inflight = None
                    raise
                error = e

            if await self._is_known(tx_hash):
                return

        # Nonce taken by another transaction. Drop ours so the retry signs afresh.
        self._inflight = None
        bt.logging.warning({
            "referral_funding": {
                "status": "stale_nonce",
                "tx_hash": Web3.to_hex(tx_hash),
            }
        })
        raise NetworkError(f"send_raw_transaction: stale nonce: {revert_reason(error)}") from error

    async def _is_known(self, tx_hash: Any) -> bool:
        try:
            await self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return False
        return True

    async def _sign(self, plan: FundingPlan) -> tuple[bytes, Any]:
        fn = self.contract.functions.fundRewards(list(plan.beneficiaries), list(plan.amounts))
        params = {"from": self.address, "value": plan.total}

        with translate_errors("fundRewards.call"):
            # Surfaces the revert reason before anything is broadcast.
            await fn.call(params)

        with translate_errors("build_transaction"):
            if self._chain_id is None:
                self._chain_id = int(await self.w3.eth.chain_id)
            # Confirmed nonce: a new plan replaces a stuck tx instead of queueing behind it.
            nonce = await self.w3.eth.get_transaction_count(self.address, "latest")
            tx = await fn.build_transaction({
                **params,
                "gas": self.gas_limit,
                "nonce": nonce,
                "chainId": self._chain_id,
            })

        signed = self.account.sign_transaction(tx)
        return bytes(signed.raw_transaction), signed.hash

    async def close(self) -> None:
        await self.w3.provider.disconnect()


__all__ = [
    "Web3EventSource",
    "Web3ReferralLedger",
    "connect",
    "revert_reason",
    "translate_errors",
]
