"""Contract ABI fragments for PixelPonyV1 and the referral contract."""

from __future__ import annotations

from web3 import Web3


def _inp(name: str, typ: str, indexed: bool | None = None) -> dict:
    entry = {"name": name, "type": typ}
    if indexed is not None:
        entry["indexed"] = indexed
    return entry


def _view(name: str, inputs: list[dict], outputs: list[dict]) -> dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": inputs,
        "outputs": outputs,
    }


PIXEL_PONY_ABI: list[dict] = [
    {
        "type": "event",
        "name": "RaceExecuted",
        "anonymous": False,
        "inputs": [
            _inp("raceId", "uint256", True),
            _inp("player", "address", True),
            _inp("horseId", "uint256", False),
            _inp("winners", "uint256[3]", False),
            _inp("payout", "uint256", False),
            _inp("won", "bool", False),
        ],
    },
]

REFERRAL_ABI: list[dict] = [
    _view("referrerOf", [_inp("player", "address")], [_inp("", "address")]),
    _view("hasReferrer", [_inp("player", "address")], [_inp("", "bool")]),
    _view("pendingRewards", [_inp("referrer", "address")], [_inp("", "uint256")]),
    _view(
        "getStats",
        [],
        [
            _inp("_totalRewardsFunded", "uint256"),
            _inp("_totalRewardsClaimed", "uint256"),
            _inp("_totalReferrers", "uint256"),
            _inp("_contractBalance", "uint256"),
        ],
    ),
    _view(
        "getReferrerInfo",
        [_inp("referrer", "address")],
        [_inp("pending", "uint256"), _inp("canClaim", "bool")],
    ),
    {
        "type": "function",
        "name": "fundRewards",
        "stateMutability": "payable",
        "inputs": [_inp("referrers", "address[]"), _inp("amounts", "uint256[]")],
        "outputs": [],
    },
    {
        "type": "event",
        "name": "ReferrerSet",
        "anonymous": False,
        "inputs": [
            _inp("player", "address", True),
            _inp("referrer", "address", True),
        ],
    },
]

REFERRER_SET_SIGNATURE = "ReferrerSet(address,address)"


def event_topic(signature: str) -> str:
    """0x-prefixed keccak256 of an event signature (topic0)."""
    return "0x" + Web3.keccak(text=signature).hex().removeprefix("0x")


REFERRER_SET_TOPIC = event_topic(REFERRER_SET_SIGNATURE)


__all__ = [
    "PIXEL_PONY_ABI",
    "REFERRAL_ABI",
    "REFERRER_SET_TOPIC",
    "event_topic",
]
