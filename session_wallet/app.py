"""
HTTP API for session-key smart wallets

Exposes the UserOperation pipeline over a small Flask app:
1. ETH transfers and generic execute() calls signed by the owner or a session key
2. Session key generation, grant, revocation and authorization checks
3. Receipt lookup and wallet state
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from web3 import Web3

from session_wallet.config import PipelineConfig
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
from session_wallet.session_keys import SessionKeyController
from session_wallet.signer import generate_session_key
from session_wallet.smart_account import SmartWalletService, SubmittedOperation
from session_wallet.user_operations import ExecuteCall

logger = logging.getLogger(__name__)

# Server defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

# Safety limit for a single transfer, in ETH
MAX_TRANSFER_ETH = Decimal(100)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

# Typed pipeline failures and the HTTP status they surface as
ERROR_STATUS_CODES = {
    SigningError: 400,
    InsufficientBalanceError: 400,
    InvalidWalletError: 404,
    BundlerRejected: 422,
    ConnectivityError: 502,
    BundlerResponseError: 502,
    HashMismatch: 500,
    PipelineError: 500,
}


class RequestValidationError(ValueError):
    pass


def require_fields(payload: Optional[Dict[str, Any]], *names: str) -> Dict[str, Any]:
    """Return the JSON body, rejecting it when any required field is missing"""
    payload = payload or {}
    missing = [name for name in names if not payload.get(name)]
    if missing:
        raise RequestValidationError(f"Missing required fields: {', '.join(missing)}")
    return payload


def parse_address(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not ADDRESS_PATTERN.match(value):
        raise RequestValidationError(f"Invalid {field_name}. Use an Ethereum address (0x...)")
    return Web3.to_checksum_address(value)


def parse_transfer_amount(amount: Any) -> int:
    """Parse a decimal ETH amount into wei"""
    try:
        amount_eth = Decimal(str(amount))
    except InvalidOperation:
        raise RequestValidationError("Invalid amount format. Please use decimal format (e.g., 0.01)")
    if not amount_eth.is_finite() or amount_eth <= 0:
        raise RequestValidationError("Amount must be greater than 0")
    if amount_eth > MAX_TRANSFER_ETH:
        raise RequestValidationError(f"Safety limit: Maximum transfer amount is {MAX_TRANSFER_ETH} ETH")
    return Web3.to_wei(amount_eth, "ether")


def format_operation(operation: SubmittedOperation) -> Dict[str, Any]:
    result = {
        "success": operation.success,
        "status": operation.status.value,
        "userOpHash": operation.bundler_id or Web3.to_hex(operation.user_op_hash),
        "sender": operation.user_operation.sender,
        "nonce": operation.user_operation.nonce,
    }
    if operation.error is not None:
        result["error"] = {"code": operation.error.code, "message": operation.error.message}
    return result


class WalletApiHandler:
    """Handles wallet HTTP requests"""

    def __init__(self, service: Optional[SmartWalletService] = None):
        self.app = Flask(__name__)
        self.service = service or SmartWalletService(PipelineConfig.from_env())
        self.session_keys = SessionKeyController(self.service)
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up Flask routes"""
        self.app.route("/transfer-eth", methods=["POST"])(self.transfer_eth)
        self.app.route("/execute", methods=["POST"])(self.execute)
        self.app.route("/session/add", methods=["POST"])(self.add_session_key)
        self.app.route("/session/remove", methods=["POST"])(self.remove_session_key)
        self.app.route("/session/generate", methods=["GET"])(self.generate_session_key)
        self.app.route("/session/check/<wallet_address>/<address>", methods=["GET"])(self.check_session_key)
        self.app.route("/receipt/<user_op_hash>", methods=["GET"])(self.get_receipt)
        self.app.route("/wallet/info/<wallet_address>", methods=["GET"])(self.wallet_info)
        self.app.route("/health", methods=["GET"])(self.health_check)
        self.app.register_error_handler(RequestValidationError, self._handle_validation_error)
        for error_type in ERROR_STATUS_CODES:
            self.app.register_error_handler(error_type, self._handle_pipeline_error)

    def transfer_eth(self):
        payload = require_fields(request.get_json(silent=True), "walletAddress", "to", "amount", "privateKey")
        wallet_address = parse_address(payload["walletAddress"], "walletAddress")
        recipient = parse_address(payload["to"], "to")
        amount_wei = parse_transfer_amount(payload["amount"])

        operation = self.service.send_eth(wallet_address, recipient, amount_wei, payload["privateKey"])
        return self._operation_response(operation)

    def execute(self):
        payload = require_fields(request.get_json(silent=True), "walletAddress", "to", "privateKey")
        wallet_address = parse_address(payload["walletAddress"], "walletAddress")
        try:
            action = ExecuteCall(
                to=parse_address(payload["to"], "to"),
                value=int(payload.get("value", 0)),
                data=payload.get("data") or "0x",
            )
        except (TypeError, ValueError) as e:
            raise RequestValidationError(f"Invalid call: {e}")

        operation = self.service.execute(wallet_address, action, payload["privateKey"])
        return self._operation_response(operation)

    def add_session_key(self):
        payload = require_fields(
            request.get_json(silent=True), "walletAddress", "sessionKeyAddress", "ownerPrivateKey"
        )
        operation = self.session_keys.add_session_key(
            parse_address(payload["walletAddress"], "walletAddress"),
            parse_address(payload["sessionKeyAddress"], "sessionKeyAddress"),
            payload["ownerPrivateKey"],
        )
        return self._operation_response(operation, message="Session key added")

    def remove_session_key(self):
        payload = require_fields(
            request.get_json(silent=True), "walletAddress", "sessionKeyAddress", "ownerPrivateKey"
        )
        operation = self.session_keys.remove_session_key(
            parse_address(payload["walletAddress"], "walletAddress"),
            parse_address(payload["sessionKeyAddress"], "sessionKeyAddress"),
            payload["ownerPrivateKey"],
        )
        return self._operation_response(operation, message="Session key removed")

    def generate_session_key(self):
        session_key = generate_session_key()
        return jsonify({
            "success": True,
            "sessionKey": {"address": session_key.address, "privateKey": session_key.private_key},
        })

    def check_session_key(self, wallet_address: str, address: str):
        status = self.session_keys.check_session_key(
            parse_address(wallet_address, "walletAddress"), parse_address(address, "address")
        )
        return jsonify({
            "success": True,
            "address": status.address,
            "isOwner": status.is_owner,
            "isSessionKey": status.is_session_key,
            "canSign": status.can_sign,
        })

    def get_receipt(self, user_op_hash: str):
        receipt = self.service.get_receipt(user_op_hash)
        if receipt is None:
            return jsonify({"success": False, "status": "pending", "error": "Receipt not found"}), 404
        return jsonify({
            "success": True,
            "status": "included",
            "receipt": {
                "userOpHash": receipt.user_op_hash,
                "success": receipt.success,
                "transactionHash": receipt.transaction_hash,
                "actualGasCost": receipt.actual_gas_cost,
                "actualGasUsed": receipt.actual_gas_used,
                "reason": receipt.reason,
            },
        })

    def wallet_info(self, wallet_address: str):
        info = self.service.get_wallet_info(parse_address(wallet_address, "walletAddress"))
        return jsonify({
            "success": True,
            "wallet": {
                "address": info.address,
                "owner": info.owner,
                "nonce": str(info.nonce),
                "balance": str(info.balance_eth),
            },
        })

    def health_check(self):
        """Dead-simple health check endpoint"""
        return "OK", 200

    def _operation_response(self, operation: SubmittedOperation, message: Optional[str] = None):
        result = format_operation(operation)
        if not operation.success:
            logger.error(f"UserOperation for {operation.user_operation.sender} rejected: {operation.error.message}")
            return jsonify(result), 422
        if message:
            result["message"] = message
        return jsonify(result)

    def _handle_validation_error(self, error: RequestValidationError):
        return jsonify({"success": False, "error": str(error)}), 400

    def _handle_pipeline_error(self, error: PipelineError):
        # Most specific registered class wins
        status_code = next(
            ERROR_STATUS_CODES[error_type] for error_type in type(error).__mro__ if error_type in ERROR_STATUS_CODES
        )
        logger.error(f"Request failed with {type(error).__name__}: {error}")
        if isinstance(error, BundlerRejected):
            body = {"code": error.code, "message": error.message}
        else:
            body = str(error)
        return jsonify({"success": False, "error": body}), status_code

    def run(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        """Run the Flask application"""
        self.app.run(host=host, port=port)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    handler = WalletApiHandler()
    handler.run()


if __name__ == "__main__":
    main()
