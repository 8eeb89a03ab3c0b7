"""JSON-RPC client for Sui fullnodes.

The client backs :class:`~sui_ptb.client.JsonRpcCoreClient`, which is how the
resolution pipeline reads object state, Move signatures, gas prices and coins.
It only forwards typed requests and surfaces errors clearly; it never signs or
executes transactions.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

import requests
from requests import RequestException, Response

from .config import RPCConfig, load_rpc_config

logger = logging.getLogger(__name__)

DEFAULT_OBJECT_OPTIONS = {"showType": True, "showOwner": True, "showContent": False}


class RPCError(RuntimeError):
    """Raised when the fullnode responds with a JSON-RPC error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SuiRPCClient:
    """Typed JSON-RPC client for Sui fullnodes.

    Each helper maps directly to a JSON-RPC method and returns the parsed
    ``result`` member. The endpoint comes from :func:`load_rpc_config`, so
    ``SUI_RPC_URL``/``SUI_NETWORK`` or ``~/.sui_ptb.yaml`` select the node.
    """

    def __init__(self, config: RPCConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self._session = session or requests.Session()
        self._url = config.url

    @classmethod
    def from_env(cls) -> "SuiRPCClient":
        """Instantiate a client using environment variables or config file."""

        return cls(load_rpc_config())

    def call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self._url,
                data=json.dumps(payload),
                headers={"content-type": "application/json", **self.config.headers},
                timeout=self.config.timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                f"RPC connection to {self._url} failed. Ensure the fullnode is reachable and "
                "SUI_RPC_URL/SUI_NETWORK (or ~/.sui_ptb.yaml) point to the right endpoint."
            ) from exc
        try:
            self._raise_for_status(response)
        except requests.HTTPError as exc:
            logger.error(
                "RPC HTTP error: %s", exc, exc_info=logger.isEnabledFor(logging.DEBUG)
            )
            raise RPCTransportError(
                "RPC server returned an HTTP error; check the URL and SUI_RPC_* settings.",
                status_code=response.status_code,
            ) from exc
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if not isinstance(result, dict):
            raise RPCTransportError("RPC server returned a non-object JSON response")
        if result.get("error"):
            error = result["error"]
            raise RPCError(error.get("code", -1), error.get("message", "unknown"))
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        if not response.ok:
            try:
                err_body = response.json()
            except ValueError:
                err_body = response.text

            logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
            logger.error("RPC error body: %s", err_body)
            if response.status_code == 429:
                raise RPCTransportError(
                    "Rate limited (429). Use a dedicated fullnode via SUI_RPC_URL for heavy workloads.",
                    status_code=response.status_code,
                )
        response.raise_for_status()

    # Convenience wrappers -------------------------------------------------

    def get_chain_identifier(self) -> str:
        return self.call("sui_getChainIdentifier")

    def multi_get_objects(
        self, object_ids: List[str], options: Dict[str, Any] | None = None
    ) -> List[Dict[str, Any]]:
        return self.call("sui_multiGetObjects", [object_ids, options or DEFAULT_OBJECT_OPTIONS])

    def get_normalized_move_function(
        self, package: str, module: str, function: str
    ) -> Dict[str, Any]:
        return self.call("sui_getNormalizedMoveFunction", [package, module, function])

    def dry_run_transaction_block(self, tx_bytes_b64: str) -> Dict[str, Any]:
        return self.call("sui_dryRunTransactionBlock", [tx_bytes_b64])

    def get_reference_gas_price(self) -> int:
        return int(self.call("suix_getReferenceGasPrice"))

    def get_coins(
        self,
        owner: str,
        coin_type: str | None = None,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> Dict[str, Any]:
        return self.call("suix_getCoins", [owner, coin_type, cursor, limit])
