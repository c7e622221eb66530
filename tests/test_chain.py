from unittest.mock import MagicMock, PropertyMock

import pytest
import requests
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3RPCError

from session_wallet.chain import ChainClient, FeeData
from session_wallet.exceptions import ConnectivityError, InvalidWalletError

from conftest import OWNER_ADDRESS, SESSION_ADDRESS, WALLET_ADDRESS


@pytest.fixture
def web3():
    return MagicMock()


@pytest.fixture
def client(config, web3):
    return ChainClient(config, web3=web3)


def _functions(web3):
    return web3.eth.contract.return_value.functions


class TestWalletReads:
    def test_get_nonce(self, client, web3):
        _functions(web3).getNonce.return_value.call.return_value = 5

        assert client.get_nonce(WALLET_ADDRESS) == 5

    def test_get_owner_is_checksummed(self, client, web3):
        _functions(web3).owner.return_value.call.return_value = OWNER_ADDRESS.lower()

        assert client.get_owner(WALLET_ADDRESS) == OWNER_ADDRESS

    def test_is_session_key(self, client, web3):
        _functions(web3).sessionKeys.return_value.call.return_value = True

        assert client.is_session_key(WALLET_ADDRESS, SESSION_ADDRESS) is True
        _functions(web3).sessionKeys.assert_called_with(SESSION_ADDRESS)

    def test_reads_are_not_cached(self, client, web3):
        _functions(web3).getNonce.return_value.call.side_effect = [1, 2]

        assert client.get_nonce(WALLET_ADDRESS) == 1
        assert client.get_nonce(WALLET_ADDRESS) == 2

    def test_no_contract_code_raises_invalid_wallet(self, client, web3):
        _functions(web3).getNonce.return_value.call.side_effect = BadFunctionCallOutput("Could not decode")

        with pytest.raises(InvalidWalletError):
            client.get_nonce(WALLET_ADDRESS)

    def test_revert_raises_invalid_wallet(self, client, web3):
        _functions(web3).owner.return_value.call.side_effect = ContractLogicError("execution reverted")

        with pytest.raises(InvalidWalletError):
            client.get_owner(WALLET_ADDRESS)

    def test_unreachable_node_raises_connectivity_error(self, client, web3):
        _functions(web3).getNonce.return_value.call.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(ConnectivityError):
            client.get_nonce(WALLET_ADDRESS)

    def test_balance_timeout_raises_connectivity_error(self, client, web3):
        web3.eth.get_balance.side_effect = requests.exceptions.Timeout("timed out")

        with pytest.raises(ConnectivityError):
            client.get_balance(WALLET_ADDRESS)

    def test_node_rpc_error_on_call_raises_connectivity_error(self, client, web3):
        _functions(web3).getNonce.return_value.call.side_effect = Web3RPCError("header not found")

        with pytest.raises(ConnectivityError):
            client.get_nonce(WALLET_ADDRESS)

    def test_node_rpc_error_on_balance_raises_connectivity_error(self, client, web3):
        web3.eth.get_balance.side_effect = Web3RPCError("internal error")

        with pytest.raises(ConnectivityError):
            client.get_balance(WALLET_ADDRESS)

    def test_node_rpc_error_on_code_raises_connectivity_error(self, client, web3):
        web3.eth.get_code.side_effect = Web3RPCError("internal error")

        with pytest.raises(ConnectivityError):
            client.is_deployed(WALLET_ADDRESS)

    def test_is_deployed(self, client, web3):
        web3.eth.get_code.return_value = b""
        assert client.is_deployed(WALLET_ADDRESS) is False

        web3.eth.get_code.return_value = b"\x60\x80"
        assert client.is_deployed(WALLET_ADDRESS) is True


class TestFeeData:
    def test_max_fee_is_twice_base_fee_plus_priority(self, client, web3):
        web3.eth.get_block.return_value = {"baseFeePerGas": 10 * 10**9}
        web3.eth.max_priority_fee = 10**9

        assert client.get_fee_data() == FeeData(max_fee_per_gas=21 * 10**9, max_priority_fee_per_gas=10**9)

    def test_no_base_fee_returns_empty_fee_data(self, client, web3):
        web3.eth.get_block.return_value = {}

        assert client.get_fee_data() == FeeData()

    def test_priority_fee_unavailable_returns_empty_fee_data(self, client, web3):
        web3.eth.get_block.return_value = {"baseFeePerGas": 10**9}
        type(web3.eth).max_priority_fee = PropertyMock(side_effect=Web3RPCError("method not found"))

        assert client.get_fee_data() == FeeData()

    def test_block_read_failure_raises_connectivity_error(self, client, web3):
        web3.eth.get_block.side_effect = Web3RPCError("internal error")

        with pytest.raises(ConnectivityError):
            client.get_fee_data()

    def test_unreachable_node_during_priority_fee_raises_connectivity_error(self, client, web3):
        web3.eth.get_block.return_value = {"baseFeePerGas": 10**9}
        type(web3.eth).max_priority_fee = PropertyMock(side_effect=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(ConnectivityError):
            client.get_fee_data()


def test_entry_point_user_op_hash(client, web3, user_operation):
    _functions(web3).getUserOpHash.return_value.call.return_value = b"\x01" * 32

    assert client.get_entry_point_user_op_hash(user_operation) == b"\x01" * 32
    op_tuple = _functions(web3).getUserOpHash.call_args[0][0]
    assert op_tuple[0] == user_operation.sender
    assert op_tuple[1] == user_operation.nonce
    assert len(op_tuple) == 11
