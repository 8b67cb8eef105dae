"""Per-action double-submit protection."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Set, TypeVar

T = TypeVar("T")


class ActionInFlight(RuntimeError):
	def __init__(self, key: str) -> None:
		super().__init__(f"action already in flight: {key}")
		self.key = key


class ActionGuard:
	"""Tracks in-flight actions by key; a second trigger is refused without a call."""

	def __init__(self) -> None:
		self._in_flight: Set[str] = set()

	def is_busy(self, key: str) -> bool:
		return key in self._in_flight

	@asynccontextmanager
	async def hold(self, key: str) -> AsyncIterator[None]:
		if key in self._in_flight:
			raise ActionInFlight(key)
		self._in_flight.add(key)
		try:
			yield
		finally:
			self._in_flight.discard(key)

	async def run(self, key: str, action: Callable[[], Awaitable[T]]) -> T:
		async with self.hold(key):
			return await action()
