"""
Session-Key Smart Wallet Pipeline

Builds, hashes, signs and submits ERC-4337 (EntryPoint v0.6) UserOperations
for smart wallets with owner-granted session keys, via any ERC-4337
bundler.
"""

# Main service
from session_wallet.smart_account import (
    OperationStatus,
    SmartWalletService,
    SubmittedOperation,
    WalletInfo,
    create_smart_wallet_service,
)
from session_wallet.session_keys import SessionKeyController, SessionKeyStatus

# Configuration
from session_wallet.config import PipelineConfig

# Individual components for advanced usage
from session_wallet.bundler import BundlerClient, UserOperationReceipt, convert_user_operation_to_bundler_format
from session_wallet.chain import ChainClient, FeeData
from session_wallet.hashing import get_user_op_hash, verify_user_op_hash
from session_wallet.signer import SessionKey, generate_session_key, recover_signer, sign_user_op_hash
from session_wallet.user_operations import ExecuteCall, UserOperation, UserOperationBuilder
from session_wallet.exceptions import (
    BundlerRejected,
    BundlerResponseError,
    ConnectivityError,
    HashMismatch,
    InsufficientBalanceError,
    InvalidWalletError,
    PipelineError,
    SigningError,
)

__version__ = "1.0.0"

__all__ = [
    "SmartWalletService",
    "create_smart_wallet_service",
    "SubmittedOperation",
    "OperationStatus",
    "WalletInfo",
    "SessionKeyController",
    "SessionKeyStatus",
    "PipelineConfig",
    "BundlerClient",
    "UserOperationReceipt",
    "convert_user_operation_to_bundler_format",
    "ChainClient",
    "FeeData",
    "get_user_op_hash",
    "verify_user_op_hash",
    "SessionKey",
    "generate_session_key",
    "recover_signer",
    "sign_user_op_hash",
    "ExecuteCall",
    "UserOperation",
    "UserOperationBuilder",
    "PipelineError",
    "ConnectivityError",
    "InvalidWalletError",
    "BundlerRejected",
    "BundlerResponseError",
    "SigningError",
    "HashMismatch",
    "InsufficientBalanceError",
]
