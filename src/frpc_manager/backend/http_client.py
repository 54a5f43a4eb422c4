"""HTTP client for the frpc backend.

Implements the full CommandFacade over httpx:
- Commands: POST {INVOKE_PATH_PREFIX}/{command} with JSON arguments;
  the response body is the JSON result (204 means no result)
- Events: GET {EVENTS_PATH} streams NDJSON envelopes, consumed by
  StreamEventSource. activation-status must carry {"status": true} for
  a successful activation; false is treated as a rejection

Transport: TCP base URL, or a Unix domain socket when socket_path is set
(OS file permissions authenticate the caller, as with the manager socket).

Errors: every failure surfaces as BackendError with one message. The
backend's {"detail": "..."} body is preferred; otherwise the raw text.
No retries; retry policy belongs to the caller.
"""

from __future__ import annotations

__all__ = ["HttpCommandFacade"]

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from frpc_manager.constants import (
    APP_NAME,
    DEFAULT_BACKEND_URL,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    EVENTS_PATH,
    INVOKE_PATH_PREFIX,
)
from frpc_manager.exceptions import BackendError
from frpc_manager.models import ActiveVersion, FrpcConfig, Proxy, ProxyType, VersionRecord

_logger = logging.getLogger(f"{APP_NAME}.backend.http")

_VERSION_LIST = TypeAdapter(list[VersionRecord])
_PROXY_LIST = TypeAdapter(list[Proxy])


def _error_message(response: httpx.Response) -> str:
    """Extract the single human-readable message from an error response."""
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error") or body.get("message")
        if detail:
            return str(detail)
    if isinstance(body, str) and body:
        return body
    text = response.text.strip()
    return text or f"HTTP {response.status_code}"


class HttpCommandFacade:
    """CommandFacade backed by the backend's HTTP API.

    Usage:
        async with HttpCommandFacade("http://127.0.0.1:7410") as facade:
            versions = await facade.get_versions()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BACKEND_URL,
        *,
        socket_path: str | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the facade.

        Args:
            base_url: Backend base URL (ignored host when socket_path is set).
            socket_path: Optional Unix domain socket path.
            timeout: Request timeout in seconds.
            client: Pre-built client (tests inject one with MockTransport).
        """
        if client is not None:
            self._client = client
        else:
            transport = httpx.AsyncHTTPTransport(uds=socket_path) if socket_path else None
            self._client = httpx.AsyncClient(
                base_url="http://localhost" if socket_path else base_url,
                transport=transport,
                timeout=timeout,
            )

    async def __aenter__(self) -> HttpCommandFacade:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _invoke(self, command: str, **args: Any) -> Any:
        """Invoke one backend command.

        Returns:
            Decoded JSON result, or None for empty responses.

        Raises:
            BackendError: On connection failure, error status, or bad JSON.
        """
        try:
            response = await self._client.post(f"{INVOKE_PATH_PREFIX}/{command}", json=args)
        except httpx.TransportError as e:
            raise BackendError(f"backend unavailable: {e}") from e

        if response.is_error:
            message = _error_message(response)
            _logger.debug(
                {
                    "event": "backend_command_failed",
                    "message": f"{command} failed: {message}",
                    "details": {"command": command, "status_code": response.status_code},
                }
            )
            raise BackendError(message)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise BackendError(f"{command}: invalid JSON response from backend") from e

    @staticmethod
    def _validate(command: str, adapter_or_model: Any, value: Any) -> Any:
        try:
            if isinstance(adapter_or_model, TypeAdapter):
                return adapter_or_model.validate_python(value)
            return adapter_or_model.model_validate(value)
        except ValidationError as e:
            raise BackendError(f"{command}: unexpected response shape: {e.error_count()} errors") from e

    # --- configuration -----------------------------------------------------

    async def load_config(self) -> FrpcConfig:
        return self._validate("load_config", FrpcConfig, await self._invoke("load_config"))

    async def save_server(self, partial: FrpcConfig) -> None:
        await self._invoke("save_server", partial=partial.model_dump(mode="json", by_alias=True))

    async def save_now(self) -> None:
        await self._invoke("save_now")

    async def load_proxies(self) -> list[Proxy]:
        return self._validate("load_proxies", _PROXY_LIST, await self._invoke("load_proxies") or [])

    async def save_proxy(self, proxy: Proxy) -> None:
        await self._invoke("save_proxy", proxy=proxy.model_dump(mode="json", by_alias=True))

    async def remove_proxy(self, name: str, proxy_type: ProxyType | None = None) -> bool:
        args: dict[str, Any] = {"name": name}
        if proxy_type is not None:
            args["type"] = proxy_type.value
        return bool(await self._invoke("remove_proxy", **args))

    async def get_setting(self, key: str) -> Any | None:
        return await self._invoke("get_setting", key=key)

    async def set_setting(self, key: str, value: Any) -> bool:
        return bool(await self._invoke("set_setting", key=key, value=value))

    async def export_toml(self) -> str:
        return str(await self._invoke("export_toml") or "")

    async def export_toml_to_file(self) -> str:
        return str(await self._invoke("export_toml_to_file") or "")

    # --- versions ----------------------------------------------------------

    async def get_versions(self) -> list[VersionRecord]:
        return self._validate("get_versions", _VERSION_LIST, await self._invoke("get_versions") or [])

    async def download_version(self, name: str, url: str) -> None:
        await self._invoke("download_version", name=name, url=url)

    async def delete_version(self, name: str) -> None:
        await self._invoke("delete_version", name=name)

    async def activate_version(self, name: str) -> None:
        await self._invoke("activate_version", name=name)

    async def deactivate_version(self, name: str) -> None:
        await self._invoke("deactivate_version", name=name)

    async def get_active_version(self) -> ActiveVersion | None:
        result = await self._invoke("get_active_version")
        if result is None:
            return None
        return self._validate("get_active_version", ActiveVersion, result)

    # --- process -----------------------------------------------------------

    async def start_frpc(self, exe_path: str, cfg_path: str) -> int:
        result = await self._invoke("start_frpc", exePath=exe_path, cfgPath=cfg_path)
        try:
            return int(result)
        except (TypeError, ValueError) as e:
            raise BackendError(f"start_frpc: expected pid, got {result!r}") from e

    async def stop_frpc(self) -> None:
        await self._invoke("stop_frpc")

    async def frpc_status(self) -> bool:
        return bool(await self._invoke("frpc_status"))

    # --- events ------------------------------------------------------------

    async def stream_events(self) -> AsyncIterator[str]:
        """Yield NDJSON lines from the backend event stream until it closes.

        Raises:
            BackendError: If the stream cannot be opened.
        """
        try:
            async with self._client.stream("GET", EVENTS_PATH, timeout=None) as response:
                if response.is_error:
                    await response.aread()
                    raise BackendError(_error_message(response))
                async for line in response.aiter_lines():
                    if line:
                        yield line
        except httpx.TransportError as e:
            raise BackendError(f"event stream unavailable: {e}") from e
