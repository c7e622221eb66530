"""
Read-only access to on-chain smart wallet state
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3RPCError

from session_wallet.config import PipelineConfig
from session_wallet.exceptions import ConnectivityError, InvalidWalletError

logger = logging.getLogger(__name__)

# Read surface of the session-key wallet contract
WALLET_ABI = [
    {
        "inputs": [],
        "name": "getNonce",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "", "type": "address"}],
        "name": "sessionKeys",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
]

_USER_OPERATION_COMPONENTS = [
    {"name": "sender", "type": "address"},
    {"name": "nonce", "type": "uint256"},
    {"name": "initCode", "type": "bytes"},
    {"name": "callData", "type": "bytes"},
    {"name": "callGasLimit", "type": "uint256"},
    {"name": "verificationGasLimit", "type": "uint256"},
    {"name": "preVerificationGas", "type": "uint256"},
    {"name": "maxFeePerGas", "type": "uint256"},
    {"name": "maxPriorityFeePerGas", "type": "uint256"},
    {"name": "paymasterAndData", "type": "bytes"},
    {"name": "signature", "type": "bytes"},
]

# EntryPoint v0.6 hash helper, used to cross-check local hashing
ENTRY_POINT_ABI = [
    {
        "inputs": [{"name": "userOp", "type": "tuple", "components": _USER_OPERATION_COMPONENTS}],
        "name": "getUserOpHash",
        "outputs": [{"name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function",
    },
]


@dataclass(frozen=True)
class FeeData:
    """Network fee suggestion. None means the node had nothing to offer."""

    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None


class ChainClient:
    """Read-only queries against a JSON-RPC node. Nothing is cached between calls."""

    def __init__(self, config: PipelineConfig, web3: Optional[Web3] = None):
        self.config = config
        self.web3 = web3 or Web3(
            Web3.HTTPProvider(config.rpc_url, request_kwargs={"timeout": config.request_timeout})
        )

    def get_nonce(self, wallet_address: str) -> int:
        """Current UserOperation nonce as reported by the wallet"""
        nonce = self._call(self._wallet(wallet_address).functions.getNonce(), wallet_address)
        logger.info(f"Current nonce for {wallet_address}: {nonce}")
        return nonce

    def get_owner(self, wallet_address: str) -> str:
        owner = self._call(self._wallet(wallet_address).functions.owner(), wallet_address)
        return Web3.to_checksum_address(owner)

    def is_session_key(self, wallet_address: str, address: str) -> bool:
        """Read sessionKeys[address] from wallet storage"""
        function = self._wallet(wallet_address).functions.sessionKeys(Web3.to_checksum_address(address))
        return bool(self._call(function, wallet_address))

    def get_balance(self, wallet_address: str) -> int:
        try:
            return self.web3.eth.get_balance(Web3.to_checksum_address(wallet_address))
        except (requests.exceptions.RequestException, Web3RPCError) as e:
            raise ConnectivityError(f"RPC node unreachable: {e}") from e

    def is_deployed(self, wallet_address: str) -> bool:
        try:
            code = self.web3.eth.get_code(Web3.to_checksum_address(wallet_address))
        except (requests.exceptions.RequestException, Web3RPCError) as e:
            raise ConnectivityError(f"RPC node unreachable: {e}") from e
        return len(code) > 0

    def get_fee_data(self) -> FeeData:
        """Suggested EIP-1559 fees: maxFee = 2 * baseFee + priorityFee.

        Returns empty FeeData when the latest block carries no base fee or
        the node does not answer eth_maxPriorityFeePerGas. A failing block
        read is a connectivity failure.
        """
        try:
            latest_block = self.web3.eth.get_block("latest")
        except (requests.exceptions.RequestException, Web3RPCError) as e:
            raise ConnectivityError(f"Cannot read latest block: {e}") from e
        base_fee = latest_block.get("baseFeePerGas")
        if base_fee is None:
            return FeeData()

        try:
            priority_fee = self.web3.eth.max_priority_fee
        except requests.exceptions.RequestException as e:
            raise ConnectivityError(f"RPC node unreachable: {e}") from e
        except Web3RPCError as e:
            logger.warning(f"Priority fee oracle unavailable: {e}")
            return FeeData()

        return FeeData(
            max_fee_per_gas=2 * base_fee + priority_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    def get_entry_point_user_op_hash(self, user_operation) -> HexBytes:
        """Ask the EntryPoint contract for its own hash of a UserOperation"""
        entry_point = self.web3.eth.contract(
            address=self.config.entry_point_address,
            abi=ENTRY_POINT_ABI,
        )
        op_tuple = (
            user_operation.sender,
            user_operation.nonce,
            bytes(user_operation.init_code),
            bytes(user_operation.call_data),
            user_operation.call_gas_limit,
            user_operation.verification_gas_limit,
            user_operation.pre_verification_gas,
            user_operation.max_fee_per_gas,
            user_operation.max_priority_fee_per_gas,
            bytes(user_operation.paymaster_and_data),
            bytes(user_operation.signature),
        )
        result = self._call(entry_point.functions.getUserOpHash(op_tuple), self.config.entry_point_address)
        return HexBytes(result)

    def _wallet(self, wallet_address: str):
        return self.web3.eth.contract(
            address=Web3.to_checksum_address(wallet_address),
            abi=WALLET_ABI,
        )

    def _call(self, contract_function, address: str):
        try:
            return contract_function.call()
        except requests.exceptions.RequestException as e:
            raise ConnectivityError(f"RPC node unreachable: {e}") from e
        except BadFunctionCallOutput as e:
            raise InvalidWalletError(f"No wallet contract deployed at {address}") from e
        except ContractLogicError as e:
            raise InvalidWalletError(f"Call to {address} reverted: {e}") from e
        except Web3RPCError as e:
            # Node-side failure that is not a revert
            raise ConnectivityError(f"eth_call to {address} failed: {e}") from e
