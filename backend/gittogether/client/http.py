"""Thin httpx wrapper that classifies every failure into one of three errors."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api/v1"

SignoutCallback = Callable[[str], Union[None, Awaitable[None]]]


class ApiError(Exception):
	"""Base class for client-side API failures."""


class AuthExpired(ApiError):
	"""The session is no longer valid; the token has been cleared."""


class ApiRejected(ApiError):
	"""The server refused the call (validation, capacity, duplicates, permissions)."""

	def __init__(self, status_code: int, detail: Any) -> None:
		super().__init__(f"{status_code}: {detail}")
		self.status_code = status_code
		self.detail = detail


class ApiUnavailable(ApiError):
	"""Transport failure or server error; the call may or may not have been applied."""

	def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
		super().__init__(message)
		self.status_code = status_code


def _detail(response: httpx.Response) -> Any:
	try:
		payload = response.json()
	except ValueError:
		return response.text or response.reason_phrase
	if isinstance(payload, dict) and "detail" in payload:
		return payload["detail"]
	return payload


class ApiClient:
	"""Bearer-authenticated JSON client. Calls are never retried automatically."""

	def __init__(
		self,
		base_url: str = DEFAULT_BASE_URL,
		*,
		token: Optional[str] = None,
		on_signout: Optional[SignoutCallback] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
		headers: Optional[Mapping[str, str]] = None,
		timeout: float = 10.0,
	) -> None:
		self._token = token
		self._on_signout = on_signout
		self._http = httpx.AsyncClient(
			base_url=base_url.rstrip("/"),
			transport=transport,
			headers=dict(headers or {}),
			timeout=timeout,
		)

	@property
	def token(self) -> Optional[str]:
		return self._token

	def set_token(self, token: Optional[str]) -> None:
		self._token = token

	@property
	def signed_in(self) -> bool:
		return self._token is not None

	async def _sign_out(self, reason: str) -> None:
		self._token = None
		logger.info("client_forced_signout", extra={"reason": reason})
		if self._on_signout is None:
			return
		result = self._on_signout(reason)
		if inspect.isawaitable(result):
			await result

	async def request(
		self,
		method: str,
		path: str,
		*,
		json: Any = None,
		params: Optional[Mapping[str, Any]] = None,
	) -> Any:
		headers = {}
		if self._token:
			headers["Authorization"] = f"Bearer {self._token}"
		query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
		try:
			response = await self._http.request(method, path, json=json, params=query or None, headers=headers)
		except httpx.TransportError as exc:
			raise ApiUnavailable(str(exc) or exc.__class__.__name__) from exc

		if response.status_code == 401:
			await self._sign_out("token_expired")
			raise AuthExpired(str(_detail(response)))
		if response.status_code >= 500:
			raise ApiUnavailable(str(_detail(response)), status_code=response.status_code)
		if response.status_code >= 400:
			raise ApiRejected(response.status_code, _detail(response))
		if response.status_code == 204 or not response.content:
			return None
		return response.json()

	async def get(self, path: str, **params: Any) -> Any:
		return await self.request("GET", path, params=params)

	async def post(self, path: str, payload: Any = None) -> Any:
		return await self.request("POST", path, json=payload)

	async def put(self, path: str, payload: Any = None) -> Any:
		return await self.request("PUT", path, json=payload)

	async def delete(self, path: str) -> Any:
		return await self.request("DELETE", path)

	async def aclose(self) -> None:
		await self._http.aclose()

	async def __aenter__(self) -> "ApiClient":
		return self

	async def __aexit__(self, *exc_info: object) -> None:
		await self.aclose()
