"""
Smart wallet service: runs intents through build, hash, sign, submit
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from hexbytes import HexBytes
from web3 import Web3

from session_wallet.bundler import BundlerClient, UserOperationReceipt
from session_wallet.chain import ChainClient
from session_wallet.config import PipelineConfig
from session_wallet.exceptions import BundlerRejected, InsufficientBalanceError
from session_wallet.hashing import get_user_op_hash, verify_user_op_hash
from session_wallet.signer import sign_user_op_hash
from session_wallet.user_operations import BytesLike, ExecuteCall, UserOperation, UserOperationBuilder

logger = logging.getLogger(__name__)


class OperationStatus(Enum):
    BUILT = "built"
    HASHED = "hashed"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    PENDING = "pending"
    INCLUDED = "included"
    REJECTED_BY_BUNDLER = "rejected_by_bundler"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.INCLUDED, OperationStatus.REJECTED_BY_BUNDLER)


@dataclass(frozen=True)
class SubmittedOperation:
    """One UserOperation and how far it has come through the pipeline.

    ``user_op_hash`` is set from HASHED on. ``bundler_id`` is what
    eth_sendUserOperation returned, the userOpHash for compliant bundlers.
    A REJECTED_BY_BUNDLER operation carries the rejection and must be rebuilt
    from scratch, never resubmitted.
    """

    user_operation: UserOperation
    status: OperationStatus
    user_op_hash: Optional[HexBytes] = None
    bundler_id: Optional[str] = None
    error: Optional[BundlerRejected] = None
    receipt: Optional[UserOperationReceipt] = None

    @property
    def success(self) -> bool:
        return self.status != OperationStatus.REJECTED_BY_BUNDLER


@dataclass(frozen=True)
class WalletInfo:
    address: str
    owner: str
    nonce: int
    balance_wei: int

    @property
    def balance_eth(self):
        return Web3.from_wei(self.balance_wei, "ether")


def _require_status(operation: SubmittedOperation, *allowed: OperationStatus) -> None:
    if operation.status not in allowed:
        expected = " or ".join(status.value for status in allowed)
        raise ValueError(f"Operation is {operation.status.value}, expected {expected}")


class SmartWalletService:
    """Main service for session-key smart wallet operations.

    ``send_eth``, ``execute`` and ``submit_call_data`` run the whole pipeline.
    The stage methods (``build_operation``, ``hash_operation``,
    ``sign_operation``, ``submit_operation``) advance an operation one state
    at a time, for callers that inspect or store it between steps.

    Submissions for the same sender must be serialized by the caller: the
    nonce is read fresh per build and two concurrent builds race.
    """

    def __init__(
        self,
        config: PipelineConfig,
        chain_client: Optional[ChainClient] = None,
        bundler_client: Optional[BundlerClient] = None,
    ):
        self.config = config
        self.chain_client = chain_client or ChainClient(config)
        self.bundler_client = bundler_client or BundlerClient(config)
        self.builder = UserOperationBuilder(self.chain_client)

        logger.info(f"Smart wallet service initialized for chain {config.chain_id}")

    def send_eth(self, wallet_address: str, recipient: str, amount_wei: int, private_key) -> SubmittedOperation:
        """Send native currency from the wallet to ``recipient``"""
        self._validate_balance(wallet_address, amount_wei)
        return self.execute(wallet_address, ExecuteCall(to=recipient, value=amount_wei), private_key)

    def execute(self, wallet_address: str, action: ExecuteCall, private_key) -> SubmittedOperation:
        operation = self.build_operation(wallet_address, action=action)
        return self._sign_and_submit(operation, private_key)

    def submit_call_data(self, wallet_address: str, call_data: BytesLike, private_key) -> SubmittedOperation:
        """Submit pre-encoded wallet call data, used verbatim"""
        operation = self.build_operation(wallet_address, call_data=call_data)
        return self._sign_and_submit(operation, private_key)

    def build_operation(
        self,
        wallet_address: str,
        action: Optional[ExecuteCall] = None,
        call_data: Optional[BytesLike] = None,
    ) -> SubmittedOperation:
        user_operation = self.builder.build(wallet_address, action=action, call_data=call_data)
        return SubmittedOperation(user_operation=user_operation, status=OperationStatus.BUILT)

    def hash_operation(self, operation: SubmittedOperation) -> SubmittedOperation:
        """Compute the userOpHash, cross-checking it with the EntryPoint when configured"""
        _require_status(operation, OperationStatus.BUILT)
        user_operation = operation.user_operation
        user_op_hash = get_user_op_hash(user_operation, self.config.entry_point_address, self.config.chain_id)
        logger.info(f"UserOperation hash: {Web3.to_hex(user_op_hash)}")

        if self.config.verify_user_op_hash:
            reference = self.chain_client.get_entry_point_user_op_hash(user_operation)
            verify_user_op_hash(user_operation, reference, self.config.entry_point_address, self.config.chain_id)

        return replace(operation, status=OperationStatus.HASHED, user_op_hash=user_op_hash)

    def sign_operation(self, operation: SubmittedOperation, private_key) -> SubmittedOperation:
        _require_status(operation, OperationStatus.HASHED)
        signature = sign_user_op_hash(operation.user_op_hash, private_key)
        return replace(
            operation,
            status=OperationStatus.SIGNED,
            user_operation=operation.user_operation.with_signature(signature),
        )

    def submit_operation(self, operation: SubmittedOperation) -> SubmittedOperation:
        """Hand a signed operation to the bundler. A rejection is returned, not raised."""
        _require_status(operation, OperationStatus.SIGNED)
        user_op_hash = operation.user_op_hash

        try:
            bundler_id = self.bundler_client.send_user_operation(
                operation.user_operation, self.config.entry_point_address
            )
        except BundlerRejected as e:
            logger.error(f"UserOperation rejected for {operation.user_operation.sender}: {e.message}")
            return replace(operation, status=OperationStatus.REJECTED_BY_BUNDLER, error=e)

        if bundler_id.lower() != Web3.to_hex(user_op_hash).lower():
            logger.warning(f"Bundler id {bundler_id} differs from local userOpHash {Web3.to_hex(user_op_hash)}")

        return replace(operation, status=OperationStatus.SUBMITTED, bundler_id=bundler_id)

    def poll(self, operation: SubmittedOperation) -> SubmittedOperation:
        """Check once for a receipt. Cadence and give-up policy belong to the caller."""
        if operation.status.is_terminal:
            return operation
        _require_status(operation, OperationStatus.SUBMITTED, OperationStatus.PENDING)

        receipt = self.get_receipt(operation.bundler_id)
        if receipt is None:
            return replace(operation, status=OperationStatus.PENDING)
        # Included is terminal whether or not the inner call reverted
        return replace(operation, status=OperationStatus.INCLUDED, receipt=receipt)

    def get_receipt(self, user_op_hash: str) -> Optional[UserOperationReceipt]:
        return self.bundler_client.get_user_operation_receipt(user_op_hash)

    def get_wallet_info(self, wallet_address: str) -> WalletInfo:
        return WalletInfo(
            address=Web3.to_checksum_address(wallet_address),
            owner=self.chain_client.get_owner(wallet_address),
            nonce=self.chain_client.get_nonce(wallet_address),
            balance_wei=self.chain_client.get_balance(wallet_address),
        )

    def _sign_and_submit(self, operation: SubmittedOperation, private_key) -> SubmittedOperation:
        hashed = self.hash_operation(operation)
        return self.submit_operation(self.sign_operation(hashed, private_key))

    def _validate_balance(self, wallet_address: str, amount_wei: int) -> None:
        """Validate sufficient balance for transfer"""
        balance_wei = self.chain_client.get_balance(wallet_address)
        logger.info(f"Sending {amount_wei} wei (balance: {balance_wei} wei)")

        if balance_wei < amount_wei:
            raise InsufficientBalanceError(
                f"Insufficient balance: {Web3.from_wei(balance_wei, 'ether')} ETH < "
                f"{Web3.from_wei(amount_wei, 'ether')} ETH"
            )


def create_smart_wallet_service() -> SmartWalletService:
    """Create a smart wallet service from environment configuration"""
    return SmartWalletService(PipelineConfig.from_env())
