"""
UserOperation model, wallet call-data encoders and the UserOperation builder
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Union

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from session_wallet.chain import ChainClient
from session_wallet.config import (
    DEFAULT_GAS_LIMITS,
    DEFAULT_MAX_FEE_PER_GAS,
    DEFAULT_MAX_PRIORITY_FEE_PER_GAS,
)

logger = logging.getLogger(__name__)

# Function selectors of the wallet write surface
EXECUTE_SELECTOR = Web3.keccak(text="execute(address,uint256,bytes)")[:4]
ADD_SESSION_KEY_SELECTOR = Web3.keccak(text="addSessionKey(address)")[:4]
REMOVE_SESSION_KEY_SELECTOR = Web3.keccak(text="removeSessionKey(address)")[:4]

BytesLike = Union[bytes, str]


def _empty_bytes() -> HexBytes:
    return HexBytes(b"")


@dataclass(frozen=True)
class UserOperation:
    """ERC-4337 v0.6 UserOperation. Byte fields are empty until set."""

    sender: str
    nonce: int
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    init_code: HexBytes = field(default_factory=_empty_bytes)
    call_data: HexBytes = field(default_factory=_empty_bytes)
    paymaster_and_data: HexBytes = field(default_factory=_empty_bytes)
    signature: HexBytes = field(default_factory=_empty_bytes)

    def __post_init__(self):
        object.__setattr__(self, "sender", Web3.to_checksum_address(self.sender))
        for name in ("init_code", "call_data", "paymaster_and_data", "signature"):
            object.__setattr__(self, name, HexBytes(getattr(self, name)))
        for name in ("call_gas_limit", "verification_gas_limit", "pre_verification_gas"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be non-zero")
        if self.nonce < 0:
            raise ValueError("nonce must be non-negative")

    @property
    def is_signed(self) -> bool:
        return len(self.signature) > 0

    def with_signature(self, signature: BytesLike) -> "UserOperation":
        """Return a copy carrying the given signature"""
        return replace(self, signature=HexBytes(signature))


@dataclass(frozen=True)
class ExecuteCall:
    """Generic wallet action: execute(to, value, data)"""

    to: str
    value: int = 0
    data: HexBytes = field(default_factory=_empty_bytes)

    def __post_init__(self):
        if not Web3.is_address(self.to):
            raise ValueError(f"Invalid target address: {self.to}")
        if self.value < 0:
            raise ValueError("value must be non-negative")
        object.__setattr__(self, "data", HexBytes(self.data))

    def encode(self) -> HexBytes:
        return encode_execute(self.to, self.value, self.data)


def encode_execute(to_address: str, value_wei: int, data: BytesLike = b"") -> HexBytes:
    """Encode execute(address,uint256,bytes) call data"""
    encoded_params = encode(
        ["address", "uint256", "bytes"],
        [Web3.to_checksum_address(to_address), value_wei, bytes(HexBytes(data))],
    )
    return HexBytes(EXECUTE_SELECTOR + encoded_params)


def encode_add_session_key(session_key_address: str) -> HexBytes:
    """Encode addSessionKey(address) call data"""
    return HexBytes(
        ADD_SESSION_KEY_SELECTOR + encode(["address"], [Web3.to_checksum_address(session_key_address)])
    )


def encode_remove_session_key(session_key_address: str) -> HexBytes:
    """Encode removeSessionKey(address) call data"""
    return HexBytes(
        REMOVE_SESSION_KEY_SELECTOR + encode(["address"], [Web3.to_checksum_address(session_key_address)])
    )


class UserOperationBuilder:
    """Assembles unsigned UserOperations from wallet state and a fixed gas policy.

    The nonce is read from the wallet on every build. There is no local nonce
    queue, so concurrent builds for the same sender race at the bundler and
    callers must serialize them.
    """

    def __init__(self, chain_client: ChainClient, gas_limits: Optional[dict] = None):
        self.chain_client = chain_client
        self.gas_limits = {**DEFAULT_GAS_LIMITS, **(gas_limits or {})}

    def build(
        self,
        wallet_address: str,
        action: Optional[ExecuteCall] = None,
        call_data: Optional[BytesLike] = None,
    ) -> UserOperation:
        """Build an unsigned UserOperation.

        Explicit ``call_data`` is used verbatim and ``action`` encoding is
        skipped. Exactly one of the two must be given.
        """
        if (action is None) == (call_data is None):
            raise ValueError("Provide exactly one of action or call_data")

        if call_data is not None:
            encoded_call = HexBytes(call_data)
        else:
            encoded_call = action.encode()

        nonce = self.chain_client.get_nonce(wallet_address)
        max_fee_per_gas, max_priority_fee_per_gas = self._fees()

        user_operation = UserOperation(
            sender=wallet_address,
            nonce=nonce,
            call_data=encoded_call,
            call_gas_limit=self.gas_limits["call"],
            verification_gas_limit=self.gas_limits["verification"],
            pre_verification_gas=self.gas_limits["pre_verification"],
            max_fee_per_gas=max_fee_per_gas,
            max_priority_fee_per_gas=max_priority_fee_per_gas,
        )
        logger.info(
            f"Built UserOperation for {user_operation.sender}: nonce={nonce}, "
            f"maxFeePerGas={user_operation.max_fee_per_gas}, "
            f"maxPriorityFeePerGas={user_operation.max_priority_fee_per_gas}"
        )
        return user_operation

    def _fees(self):
        """Network fees, or both floors together when the oracle has no answer.

        A reported fee of 0 is a real value and is kept, so the priority fee
        never exceeds the max fee.
        """
        fee_data = self.chain_client.get_fee_data()
        if fee_data.max_fee_per_gas is None or fee_data.max_priority_fee_per_gas is None:
            return DEFAULT_MAX_FEE_PER_GAS, DEFAULT_MAX_PRIORITY_FEE_PER_GAS
        return fee_data.max_fee_per_gas, fee_data.max_priority_fee_per_gas

    def build_transfer(self, wallet_address: str, to_address: str, amount_wei: int) -> UserOperation:
        """Build a native-currency transfer via execute(to, amount, 0x)"""
        logger.info(f"Creating transfer: {amount_wei} wei to {to_address}")
        return self.build(wallet_address, action=ExecuteCall(to=to_address, value=amount_wei))
