"""JSON-RPC boundary to the development chain (web3.py).

All chain access goes through ChainClient. Calls are blocking and issued
one at a time; the engine never has more than one request in flight.
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from eth_account import Account
from eth_utils import to_checksum_address
from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from chainseed.errors import ChainError, ConfigError, RpcError

logger = logging.getLogger(__name__)

DEFAULT_READY_ATTEMPTS = 16
READY_INTERVAL = 0.25


class ChainClient:
    """Thin blocking wrapper over a Web3 instance.

    Two submission modes:
    - unlocked (default): the node signs. The deployer is impersonated with
      anvil_impersonateAccount and transactions go through eth_sendTransaction.
    - signed: a private key is supplied and transactions are signed locally
      with eth-account, then sent with eth_sendRawTransaction.
    """

    def __init__(
        self,
        w3: Web3,
        *,
        private_key: Optional[str] = None,
        receipt_timeout: float = 120.0,
        poll_interval: float = 0.1,
    ):
        self.w3 = w3
        self.account = None
        if private_key:
            try:
                self.account = Account.from_key(private_key)
            except (ValueError, TypeError):
                # never echo the key itself
                raise ConfigError("Signing key is not a valid 32-byte private key") from None
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self._chain_id: Optional[int] = None

    @classmethod
    def connect(cls, endpoint: str, *, request_timeout: float = 30.0, **kwargs: Any) -> "ChainClient":
        """Create a client for an HTTP JSON-RPC endpoint."""
        provider = Web3.HTTPProvider(endpoint, request_kwargs={"timeout": request_timeout})
        return cls(Web3(provider), **kwargs)

    @property
    def signs_locally(self) -> bool:
        return self.account is not None

    @contextmanager
    def _guard(self, method: str) -> Iterator[None]:
        try:
            yield
        except RequestException as e:
            raise RpcError(f"{method} failed: {e}") from e
        except (Web3Exception, ValueError) as e:
            raise ChainError(f"{method} rejected: {e}") from e

    def _request(self, method: str, params: List[Any]) -> Any:
        """Raw JSON-RPC request for methods web3 does not wrap (anvil_*)."""
        with self._guard(method):
            response = self.w3.provider.make_request(method, params)
        if not isinstance(response, dict):
            raise RpcError(f"{method} returned unexpected response: {response!r}")
        if response.get("error"):
            raise ChainError(f"{method} rejected: {response['error']}")
        return response.get("result")

    # -- readiness ---------------------------------------------------------

    def block_number(self) -> int:
        with self._guard("eth_blockNumber"):
            return int(self.w3.eth.block_number)

    def wait_until_ready(self, attempts: int = DEFAULT_READY_ATTEMPTS, interval: float = READY_INTERVAL) -> int:
        """Poll eth_blockNumber until the node answers.

        Raises:
            RpcError: If the node does not answer within `attempts` tries
        """
        last_error: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                number = self.block_number()
                logger.info("Chain is ready (block %d)", number)
                return number
            except (RpcError, ChainError) as e:
                last_error = e
                logger.debug("Chain not ready (attempt %d/%d): %s", attempt + 1, attempts, e)
            if attempt + 1 < attempts:
                time.sleep(interval)
        raise RpcError(
            f"Failed to connect to chain at {self.endpoint} after {attempts} attempts "
            f"(is the node running? last error: {last_error})"
        )

    @property
    def endpoint(self) -> str:
        return getattr(self.w3.provider, "endpoint_uri", None) or repr(self.w3.provider)

    # -- state reads -------------------------------------------------------

    def get_code(self, address: str) -> bytes:
        with self._guard("eth_getCode"):
            return bytes(self.w3.eth.get_code(to_checksum_address(address)))

    def get_storage_at(self, address: str, slot: bytes) -> bytes:
        with self._guard("eth_getStorageAt"):
            value = self.w3.eth.get_storage_at(to_checksum_address(address), int.from_bytes(slot, "big"))
        return bytes(value).rjust(32, b"\x00")

    def call(self, target: str, data: bytes) -> bytes:
        with self._guard("eth_call"):
            return bytes(self.w3.eth.call({"to": to_checksum_address(target), "data": Web3.to_hex(data)}))

    def get_transaction_count(self, address: str) -> int:
        with self._guard("eth_getTransactionCount"):
            return int(self.w3.eth.get_transaction_count(to_checksum_address(address), "pending"))

    # -- privileged state injection (anvil) --------------------------------

    def set_code(self, address: str, code: bytes) -> None:
        self._request("anvil_setCode", [to_checksum_address(address), Web3.to_hex(code)])

    def set_storage_at(self, address: str, slot: bytes, value: bytes) -> None:
        self._request(
            "anvil_setStorageAt",
            [to_checksum_address(address), Web3.to_hex(slot), Web3.to_hex(value)],
        )

    def unlock(self, address: str) -> None:
        """Let the node sign for address. No-op when signing locally."""
        if not self.signs_locally:
            self._request("anvil_impersonateAccount", [to_checksum_address(address)])

    def lock(self, address: str) -> None:
        if not self.signs_locally:
            self._request("anvil_stopImpersonatingAccount", [to_checksum_address(address)])

    # -- transactions ------------------------------------------------------

    def _chain_id_cached(self) -> int:
        if self._chain_id is None:
            with self._guard("eth_chainId"):
                self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

    def send_transaction(
        self,
        sender: str,
        to: Optional[str],
        data: bytes,
        *,
        nonce: int,
        gas: int,
    ) -> str:
        """Submit a transaction and return its hash. `to=None` creates a contract."""
        tx: Dict[str, Any] = {
            "from": to_checksum_address(sender),
            "data": Web3.to_hex(data),
            "nonce": nonce,
            "gas": gas,
            "value": 0,
        }
        if to is not None:
            tx["to"] = to_checksum_address(to)

        if self.account is None:
            with self._guard("eth_sendTransaction"):
                tx_hash = self.w3.eth.send_transaction(tx)
            return Web3.to_hex(tx_hash)

        if to_checksum_address(sender) != self.account.address:
            raise ChainError(f"Signing key belongs to {self.account.address}, not deployer {sender}")
        with self._guard("eth_gasPrice"):
            tx["gasPrice"] = int(self.w3.eth.gas_price)
        tx["chainId"] = self._chain_id_cached()
        del tx["from"]
        signed = self.account.sign_transaction(tx)
        with self._guard("eth_sendRawTransaction"):
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """Block until a receipt is available or receipt_timeout elapses.

        Raises:
            ChainError: On timeout (dropped or never mined transaction)
            RpcError: On transport failure while polling
        """
        try:
            with self._guard("eth_getTransactionReceipt"):
                receipt = self.w3.eth.wait_for_transaction_receipt(
                    tx_hash,
                    timeout=self.receipt_timeout,
                    poll_latency=self.poll_interval,
                )
        except ChainError as e:
            if isinstance(e.__cause__, TimeExhausted):
                raise ChainError(
                    f"Transaction {tx_hash} not mined within {self.receipt_timeout:g}s (dropped or stuck)"
                ) from e.__cause__
            raise
        return dict(receipt)
