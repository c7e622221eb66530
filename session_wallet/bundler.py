"""
ERC-4337 bundler JSON-RPC client and wire-format conversion
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from web3 import Web3

from session_wallet.config import PipelineConfig
from session_wallet.exceptions import BundlerRejected, BundlerResponseError, ConnectivityError
from session_wallet.user_operations import UserOperation

logger = logging.getLogger(__name__)


def convert_user_operation_to_bundler_format(user_op: UserOperation) -> Dict[str, str]:
    """Convert a UserOperation to the EntryPoint v0.6 RPC format: hex quantities, 0x-prefixed bytes"""
    return {
        "sender": user_op.sender,
        "nonce": hex(user_op.nonce),
        "initCode": Web3.to_hex(user_op.init_code),
        "callData": Web3.to_hex(user_op.call_data),
        "callGasLimit": hex(user_op.call_gas_limit),
        "verificationGasLimit": hex(user_op.verification_gas_limit),
        "preVerificationGas": hex(user_op.pre_verification_gas),
        "maxFeePerGas": hex(user_op.max_fee_per_gas),
        "maxPriorityFeePerGas": hex(user_op.max_priority_fee_per_gas),
        "paymasterAndData": Web3.to_hex(user_op.paymaster_and_data),
        "signature": Web3.to_hex(user_op.signature),
    }


def _parse_quantity(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


@dataclass
class UserOperationReceipt:
    """Inclusion record returned by eth_getUserOperationReceipt"""

    user_op_hash: str
    success: bool
    transaction_hash: Optional[str]
    actual_gas_cost: Optional[int] = None
    actual_gas_used: Optional[int] = None
    reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_rpc(cls, payload: Dict[str, Any]) -> "UserOperationReceipt":
        if "success" not in payload:
            raise BundlerResponseError("Receipt payload is missing the success flag")
        # The transaction hash lives in the nested transaction receipt
        tx_receipt = payload.get("receipt") or {}
        return cls(
            user_op_hash=payload.get("userOpHash"),
            success=bool(payload["success"]),
            transaction_hash=tx_receipt.get("transactionHash") or payload.get("transactionHash"),
            actual_gas_cost=_parse_quantity(payload.get("actualGasCost")),
            actual_gas_used=_parse_quantity(payload.get("actualGasUsed")),
            reason=payload.get("reason") or None,
            raw=payload,
        )


class BundlerClient:
    """Client for an ERC-4337 bundler. No retries, no deduplication, no polling loop."""

    def __init__(self, config: PipelineConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests

    def send_user_operation(self, user_op: UserOperation, entry_point: Optional[str] = None) -> str:
        """Submit a signed UserOperation and return the bundler-assigned id (the userOpHash)"""
        entry_point = entry_point or self.config.entry_point_address
        user_op_dict = convert_user_operation_to_bundler_format(user_op)
        logger.info(f"Sending UserOperation to bundler: sender={user_op.sender}, nonce={user_op_dict['nonce']}")

        result = self._make_bundler_request("eth_sendUserOperation", [user_op_dict, entry_point])
        if not isinstance(result, str):
            raise BundlerResponseError(f"Bundler returned an invalid userOp hash: {result!r}")

        logger.info(f"UserOperation sent successfully: {result}")
        return result

    def get_user_operation_receipt(self, user_op_hash: str) -> Optional[UserOperationReceipt]:
        """Return the receipt, or None while the operation is still pending"""
        result = self._make_bundler_request("eth_getUserOperationReceipt", [user_op_hash])
        if result is None:
            return None
        if not isinstance(result, dict):
            raise BundlerResponseError(f"Bundler returned an invalid receipt payload: {result!r}")

        receipt = UserOperationReceipt.from_rpc(result)
        logger.info(
            f"UserOperation {user_op_hash} included in {receipt.transaction_hash} (success={receipt.success})"
        )
        return receipt

    def _make_bundler_request(self, method: str, params: List) -> Any:
        """Make JSON-RPC request to bundler"""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": int(time.time() * 1000),
        }

        try:
            response = self.session.post(
                self.config.bundler_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.config.request_timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ConnectivityError(f"Bundler request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("error"):
            error = body["error"]
            if not isinstance(error, dict):
                error = {"message": error}
            message = str(error.get("message", "Unknown error"))
            logger.error(f"Bundler error: {message}")
            raise BundlerRejected(code=error.get("code"), message=message)

        if response.status_code != 200:
            raise ConnectivityError(f"Bundler HTTP error: {response.status_code}")
        if not isinstance(body, dict) or "result" not in body:
            raise BundlerResponseError(f"Malformed JSON-RPC response for {method}")

        return body["result"]
