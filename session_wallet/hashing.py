"""
Canonical ERC-4337 v0.6 userOpHash computation.

The digest must match EntryPoint.getUserOpHash bit for bit:

    inner = keccak256(abi.encode(sender, nonce, keccak256(initCode),
                                 keccak256(callData), callGasLimit,
                                 verificationGasLimit, preVerificationGas,
                                 maxFeePerGas, maxPriorityFeePerGas,
                                 keccak256(paymasterAndData)))
    userOpHash = keccak256(abi.encode(inner, entryPoint, chainId))

The signature field is not part of the hash.
"""

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from session_wallet.exceptions import HashMismatch

PACKED_USER_OP_TYPES = [
    "address",
    "uint256",
    "bytes32",
    "bytes32",
    "uint256",
    "uint256",
    "uint256",
    "uint256",
    "uint256",
    "bytes32",
]


def pack_user_operation(user_operation) -> bytes:
    """ABI-encode the hashed fields of a UserOperation, dynamic bytes replaced by their keccak"""
    return encode(
        PACKED_USER_OP_TYPES,
        [
            Web3.to_checksum_address(user_operation.sender),
            user_operation.nonce,
            Web3.keccak(user_operation.init_code),
            Web3.keccak(user_operation.call_data),
            user_operation.call_gas_limit,
            user_operation.verification_gas_limit,
            user_operation.pre_verification_gas,
            user_operation.max_fee_per_gas,
            user_operation.max_priority_fee_per_gas,
            Web3.keccak(user_operation.paymaster_and_data),
        ],
    )


def get_user_op_hash(user_operation, entry_point_address: str, chain_id: int) -> HexBytes:
    """32-byte signing digest bound to an EntryPoint deployment and chain"""
    inner_hash = Web3.keccak(pack_user_operation(user_operation))
    return HexBytes(
        Web3.keccak(
            encode(
                ["bytes32", "address", "uint256"],
                [inner_hash, Web3.to_checksum_address(entry_point_address), chain_id],
            )
        )
    )


def verify_user_op_hash(user_operation, expected_hash, entry_point_address: str, chain_id: int) -> HexBytes:
    """Recompute the hash and compare it with a reference value, e.g. the EntryPoint's own"""
    actual = get_user_op_hash(user_operation, entry_point_address, chain_id)
    expected = HexBytes(expected_hash)
    if actual != expected:
        raise HashMismatch(expected=Web3.to_hex(expected), actual=Web3.to_hex(actual))
    return actual
