"""
Raw-digest ECDSA signing for UserOperations.

The wallet verifies ecrecover(userOpHash, signature) directly, so the digest
is signed as-is, without the EIP-191 "Ethereum Signed Message" prefix.
"""

import logging
from dataclasses import dataclass

from eth_account import Account
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_utils import ValidationError
from hexbytes import HexBytes
from web3 import Web3

from session_wallet.exceptions import SigningError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionKey:
    """Freshly generated signing key pair to be registered on a wallet"""

    address: str
    private_key: str

    def __repr__(self):
        return f"SessionKey(address={self.address!r})"


def _load_account(private_key):
    if not isinstance(private_key, (str, bytes)):
        raise SigningError("Private key must be hex or bytes")
    try:
        key_bytes = HexBytes(private_key)
    except ValueError as e:
        raise SigningError("Private key is not valid hex") from e
    if len(key_bytes) != 32:
        raise SigningError("Private key must be 32 bytes")
    try:
        return Account.from_key(key_bytes)
    except (ValueError, ValidationError) as e:
        raise SigningError("Private key is not a valid secp256k1 key") from e


def _as_bytes(value, name) -> HexBytes:
    try:
        return HexBytes(value)
    except (TypeError, ValueError) as e:
        raise SigningError(f"{name} is not valid hex") from e


def address_from_private_key(private_key) -> str:
    return _load_account(private_key).address


def sign_user_op_hash(user_op_hash, private_key) -> HexBytes:
    """Sign a 32-byte userOpHash, returning the 65-byte r || s || v signature (v in {27, 28})"""
    digest = _as_bytes(user_op_hash, "Digest")
    if len(digest) != 32:
        raise SigningError(f"Digest must be 32 bytes, got {len(digest)}")

    account = _load_account(private_key)
    signed = account.unsafe_sign_hash(digest)
    logger.info(f"Signed userOpHash {Web3.to_hex(digest)} with {account.address}")
    return HexBytes(signed.signature)


def recover_signer(user_op_hash, signature) -> str:
    """Recover the checksummed address that produced ``signature`` over the raw digest"""
    digest = _as_bytes(user_op_hash, "Digest")
    signature_bytes = _as_bytes(signature, "Signature")
    if len(signature_bytes) != 65:
        raise SigningError(f"Signature must be 65 bytes, got {len(signature_bytes)}")
    v = signature_bytes[64]
    if v >= 27:
        v -= 27
    try:
        signature_obj = keys.Signature(
            vrs=(v, int.from_bytes(signature_bytes[:32], "big"), int.from_bytes(signature_bytes[32:64], "big"))
        )
        public_key = signature_obj.recover_public_key_from_msg_hash(bytes(digest))
    except (BadSignature, ValidationError) as e:
        raise SigningError(f"Cannot recover signer: {e}") from e
    return public_key.to_checksum_address()


def generate_session_key() -> SessionKey:
    account = Account.create()
    return SessionKey(address=account.address, private_key=Web3.to_hex(account.key))
