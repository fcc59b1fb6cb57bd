"""Blockchain read access used by payment verification."""
from __future__ import annotations

from typing import Any, Dict, Optional

import requests
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from planpay.core.errors import VerificationInfrastructureError
from planpay.infra.logging import log_event


class ChainReadTimeout(TimeoutError):
    """The chain reader did not answer within its timeout."""


class ChainReader:
    """
    Interface: look up a transaction and its receipt by hash.
    Both return None when the chain does not know the hash.
    """

    def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError


class Web3ChainReader(ChainReader):
    """A thin wrapper around Web3 with a bounded request timeout."""

    def __init__(self, rpc_url: str, *, timeout: float = 10.0) -> None:
        self.rpc_url = rpc_url
        self.timeout = timeout
        # no provider-level retries: one read is bounded by one timeout
        provider = Web3.HTTPProvider(
            rpc_url,
            request_kwargs={"timeout": timeout},
            exception_retry_configuration=None,
        )
        self.web3 = Web3(provider)

    def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self._read("get_transaction", tx_hash)

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self._read("get_transaction_receipt", tx_hash)

    def _read(self, method: str, tx_hash: str) -> Optional[Dict[str, Any]]:
        try:
            data = getattr(self.web3.eth, method)(tx_hash)
        except TransactionNotFound:
            return None
        except requests.exceptions.Timeout as e:
            # ConnectTimeout is also a ConnectionError; it still counts as a timeout
            log_event("chain_read_timeout", method=method, tx_hash=tx_hash, timeout=self.timeout)
            raise ChainReadTimeout(f"{method} timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise VerificationInfrastructureError(
                f"Chain RPC unreachable at {self.rpc_url}: {type(e).__name__}: {e}"
            ) from e
        except (Web3Exception, ValueError) as e:
            # Web3RPCError for JSON-RPC error responses, ValueError for undecodable bodies
            raise VerificationInfrastructureError(f"Chain RPC error on {method}: {e}") from e
        return dict(data) if data is not None else None
