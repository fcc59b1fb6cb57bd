from __future__ import annotations

import itertools
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from planpay.core.errors import ToolInvocationError
from planpay.infra.logging import log_event

ToolFn = Callable[..., Any]

MAX_ERROR_TEXT = 200


class ToolTransport:
    """Base transport: serves some set of (namespace, tool) pairs."""

    name = "transport"

    def serves(self, namespace: str, tool: str) -> bool:
        raise NotImplementedError

    def call(self, namespace: str, tool: str, params: Dict[str, Any]) -> Any:
        raise NotImplementedError


class InProcessTransport(ToolTransport):
    """
    Reason:
    - Direct service calls skip the network when the tool lives in this process.
    Benefit:
    - Preferred path; also what tests bind fakes to.
    """

    name = "in_process"

    def __init__(self) -> None:
        self._tools: Dict[tuple[str, str], ToolFn] = {}

    def register(self, namespace: str, tool: str, fn: ToolFn) -> None:
        k = (namespace, tool)
        if k in self._tools:
            raise ValueError(f"Tool already bound: {namespace}::{tool}")
        self._tools[k] = fn

    def serves(self, namespace: str, tool: str) -> bool:
        return (namespace, tool) in self._tools

    def call(self, namespace: str, tool: str, params: Dict[str, Any]) -> Any:
        fn = self._tools[(namespace, tool)]
        try:
            return fn(params)
        except ToolInvocationError:
            raise
        except Exception as e:
            raise ToolInvocationError(str(e) or type(e).__name__) from e


class HttpTransport(ToolTransport):
    """
    JSON-RPC 2.0 `tools/call` against `{base_url}/mcp`, one base URL per namespace.
    """

    name = "http"

    def __init__(
        self,
        base_urls: Mapping[str, str],
        *,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.base_urls = {ns: url.rstrip("/") for ns, url in base_urls.items() if url}
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._ids = itertools.count(1)

    def serves(self, namespace: str, tool: str) -> bool:
        return namespace in self.base_urls

    def call(self, namespace: str, tool: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_urls[namespace]}/mcp"
        payload = {
            "jsonrpc": "2.0",
            "method": "tools/call",
            "params": {"name": tool, "arguments": params},
            "id": next(self._ids),
        }
        try:
            r = self.session.post(url, json=payload, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise ToolInvocationError(
                f"{namespace} {tool} request failed: {type(e).__name__}: {e}"
            ) from e
        except (TypeError, ValueError) as e:
            # arguments that cannot be encoded as JSON (e.g. a Decimal from an earlier step)
            raise ToolInvocationError(
                f"{namespace} {tool} arguments are not JSON-serialisable: {e}"
            ) from e

        if not r.ok:
            detail = _error_detail(r)
            log_event(
                "tool_http_error",
                namespace=namespace,
                tool=tool,
                status=r.status_code,
                detail=detail,
            )
            raise ToolInvocationError(
                f"{namespace} {tool} failed (HTTP {r.status_code}): {detail}",
                status_code=r.status_code,
            )

        try:
            data = r.json()
        except ValueError as e:
            raise ToolInvocationError(
                f"{namespace} {tool} returned malformed JSON (HTTP {r.status_code}): "
                f"{_truncate(r.text)}",
                status_code=r.status_code,
            ) from e

        if isinstance(data, dict) and data.get("error"):
            raise ToolInvocationError(
                f"{namespace} {tool} failed (HTTP {r.status_code}): {_message_of(data['error'])}",
                status_code=r.status_code,
            )

        if isinstance(data, dict) and "result" in data:
            return data["result"]
        return data


def _truncate(text: str) -> str:
    text = (text or "").strip()
    if len(text) > MAX_ERROR_TEXT:
        return text[:MAX_ERROR_TEXT] + "..."
    return text or "(empty body)"


def _message_of(err: Any) -> str:
    if isinstance(err, dict):
        return str(err.get("message") or err.get("error") or err)
    return str(err)


def _error_detail(r: requests.Response) -> str:
    """Structured error body if there is one, else truncated raw text."""
    try:
        body = r.json()
    except ValueError:
        return _truncate(r.text)
    if isinstance(body, dict):
        for k in ("error", "message"):
            if body.get(k):
                return _message_of(body[k])
    return _truncate(r.text)


class ToolAdapter:
    """
    Reason:
    - The executor must not know how a tool is reached.
    Benefit:
    - Transports are swapped (or faked) without touching execution logic.
    """

    def __init__(self, transports: List[ToolTransport]) -> None:
        self.transports = list(transports)

    def invoke(self, namespace: str, tool: str, params: Dict[str, Any]) -> Any:
        for transport in self.transports:
            if transport.serves(namespace, tool):
                log_event("tool_invoke", namespace=namespace, tool=tool, transport=transport.name)
                return transport.call(namespace, tool, params)
        raise ToolInvocationError(f"No transport configured for {namespace}::{tool}")
