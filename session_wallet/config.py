"""
Configuration for the session-key smart wallet pipeline
"""

import os
from dataclasses import dataclass

from web3 import Web3

# Network constants
ENTRYPOINT_V06 = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
SEPOLIA_CHAIN_ID = 11155111

DEFAULT_RPC_URL = "https://ethereum-sepolia-rpc.publicnode.com"
DEFAULT_BUNDLER_URL = "https://api.candide.dev/public/v3/11155111"
DEFAULT_REQUEST_TIMEOUT = 30

# Fixed gas limits for UserOperations. These are not simulated: they over-pay
# for simple calls and an operation needing more gas fails on-chain.
DEFAULT_GAS_LIMITS = {
    "call": 400000,
    "verification": 400000,
    "pre_verification": 60000,
}

# Fee floors used when the node's fee oracle returns nothing
DEFAULT_MAX_FEE_PER_GAS = Web3.to_wei(20, "gwei")
DEFAULT_MAX_PRIORITY_FEE_PER_GAS = Web3.to_wei(2, "gwei")


@dataclass(frozen=True)
class PipelineConfig:
    """Network configuration injected into the chain and bundler clients"""

    rpc_url: str = DEFAULT_RPC_URL
    bundler_url: str = DEFAULT_BUNDLER_URL
    chain_id: int = SEPOLIA_CHAIN_ID
    entry_point_address: str = ENTRYPOINT_V06
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    verify_user_op_hash: bool = False

    def __post_init__(self):
        if not Web3.is_address(self.entry_point_address):
            raise ValueError(f"Invalid entry point address: {self.entry_point_address}")
        if self.chain_id <= 0:
            raise ValueError(f"Invalid chain id: {self.chain_id}")
        # Normalize so hashing always sees the checksummed form
        object.__setattr__(
            self, "entry_point_address", Web3.to_checksum_address(self.entry_point_address)
        )

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build configuration from environment variables, falling back to Sepolia defaults"""
        return cls(
            rpc_url=os.environ.get("RPC_URL", DEFAULT_RPC_URL),
            bundler_url=os.environ.get("BUNDLER_URL", DEFAULT_BUNDLER_URL),
            chain_id=int(os.environ.get("CHAIN_ID", SEPOLIA_CHAIN_ID)),
            entry_point_address=os.environ.get("ENTRY_POINT_ADDRESS", ENTRYPOINT_V06),
            request_timeout=float(os.environ.get("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)),
            verify_user_op_hash=os.environ.get("VERIFY_USER_OP_HASH", "").lower() in ("1", "true", "yes"),
        )
