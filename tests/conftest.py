from unittest.mock import MagicMock

import pytest
from web3 import Web3

from session_wallet.chain import ChainClient, FeeData
from session_wallet.config import ENTRYPOINT_V06, SEPOLIA_CHAIN_ID, PipelineConfig
from session_wallet.user_operations import UserOperation, encode_execute

# Hardhat/Anvil default account #0 and #1
OWNER_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OWNER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
SESSION_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
SESSION_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

WALLET_ADDRESS = Web3.to_checksum_address("0x" + "aa" * 20)
RECIPIENT_ADDRESS = Web3.to_checksum_address("0x" + "bb" * 20)

# Fixed vector for the user_operation fixture below (EntryPoint v0.6, Sepolia),
# computed with a separate Keccak-256 / secp256k1 (RFC 6979) implementation
# that shares no code with eth_abi, eth_account or eth_keys.
TRANSFER_CALL_DATA = (
    "0xb61d27f6"
    "000000000000000000000000bbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
    "000000000000000000000000000000000000000000000000002386f26fc10000"
    "0000000000000000000000000000000000000000000000000000000000000060"
    "0000000000000000000000000000000000000000000000000000000000000000"
)
TRANSFER_USER_OP_HASH = "0xd7da4e55335ea8c43815c6ca26d321484bd6f4bdd48378b69e2e167d2e8b3181"
# Account #0 signature over TRANSFER_USER_OP_HASH (r || s || v, low-s, v = 27/28)
TRANSFER_OWNER_SIGNATURE = (
    "0x2a7e1415a917984aa5e6a3e8c12dd5f5b38eb3cb10b93944d699bd2108f6db1c"
    "7ef00d33d41d83e7f4bafb0d0d71ba8698898b7fe977f84f6871939024d1ba8c"
    "1c"
)


@pytest.fixture
def config():
    return PipelineConfig(
        rpc_url="http://localhost:8545",
        bundler_url="http://localhost:4337/rpc",
        chain_id=SEPOLIA_CHAIN_ID,
        entry_point_address=ENTRYPOINT_V06,
    )


@pytest.fixture
def user_operation():
    return UserOperation(
        sender=WALLET_ADDRESS,
        nonce=3,
        call_data=encode_execute(RECIPIENT_ADDRESS, 10**16, b""),
        call_gas_limit=400000,
        verification_gas_limit=400000,
        pre_verification_gas=60000,
        max_fee_per_gas=Web3.to_wei(20, "gwei"),
        max_priority_fee_per_gas=Web3.to_wei(2, "gwei"),
    )


@pytest.fixture
def chain_client():
    client = MagicMock(spec=ChainClient)
    client.get_nonce.return_value = 3
    client.get_fee_data.return_value = FeeData()
    client.get_balance.return_value = Web3.to_wei(1, "ether")
    client.get_owner.return_value = OWNER_ADDRESS
    return client


def make_rpc_response(body, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response
