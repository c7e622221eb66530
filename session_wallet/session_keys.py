"""
Session key grant, revocation and authorization checks
"""

import logging
from dataclasses import dataclass

from web3 import Web3

from session_wallet.smart_account import SmartWalletService, SubmittedOperation
from session_wallet.user_operations import encode_add_session_key, encode_remove_session_key

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class SessionKeyStatus:
    address: str
    is_owner: bool
    is_session_key: bool

    @property
    def can_sign(self) -> bool:
        return self.is_owner or self.is_session_key


class SessionKeyController:
    """Grants and revokes session keys through owner-signed self-calls.

    The wallet contract is the only record of which keys are authorized.
    Nothing is cached here; every check reads contract storage again.
    """

    def __init__(self, service: SmartWalletService):
        self.service = service

    def add_session_key(self, wallet_address: str, session_key_address: str, owner_key) -> SubmittedOperation:
        logger.info(f"Adding session key {session_key_address} to {wallet_address}")
        return self.service.submit_call_data(
            wallet_address, encode_add_session_key(session_key_address), owner_key
        )

    def remove_session_key(self, wallet_address: str, session_key_address: str, owner_key) -> SubmittedOperation:
        logger.info(f"Removing session key {session_key_address} from {wallet_address}")
        return self.service.submit_call_data(
            wallet_address, encode_remove_session_key(session_key_address), owner_key
        )

    def check_session_key(self, wallet_address: str, address: str) -> SessionKeyStatus:
        address = Web3.to_checksum_address(address)
        if address == ZERO_ADDRESS:
            return SessionKeyStatus(address=address, is_owner=False, is_session_key=False)

        chain_client = self.service.chain_client
        owner = chain_client.get_owner(wallet_address)
        return SessionKeyStatus(
            address=address,
            is_owner=address.lower() == owner.lower(),
            is_session_key=chain_client.is_session_key(wallet_address, address),
        )

    def is_authorized(self, wallet_address: str, address: str) -> bool:
        """True if ``address`` is the wallet owner or a registered session key"""
        return self.check_session_key(wallet_address, address).can_sign
