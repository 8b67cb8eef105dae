"""Fixed-interval full-window refetch bound to one open view."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from gittogether.client.http import ApiError, AuthExpired

logger = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable[Any]]
Apply = Callable[[Any], None]


class Poller:
	"""Re-fetch on a fixed interval and hand each result to ``apply``.

	Every ``start``/``stop``/``rebind`` bumps the generation; a response that lands
	after the generation moved on is dropped, so a slow reply for a previous view
	never overwrites the current one.
	"""

	def __init__(
		self,
		fetch: Fetch,
		apply: Apply,
		*,
		interval: float,
		on_error: Optional[Callable[[ApiError], None]] = None,
	) -> None:
		if interval <= 0:
			raise ValueError("interval must be positive")
		self._fetch = fetch
		self._apply = apply
		self._interval = float(interval)
		self._on_error = on_error
		self._generation = 0
		self._task: Optional[asyncio.Task] = None
		self._idle: Set[asyncio.Task] = set()
		self._draining: Set[asyncio.Task] = set()

	@property
	def generation(self) -> int:
		return self._generation

	@property
	def running(self) -> bool:
		return self._task is not None and not self._task.done()

	def start(self) -> None:
		if self._task is not None:
			self._detach()
		self._generation += 1
		self._task = asyncio.create_task(self._run(self._generation), name="gittogether-poller")

	def _detach(self) -> Optional[asyncio.Task]:
		"""Clear the timer. A fetch already on the wire is left to finish and be discarded."""
		self._generation += 1
		task, self._task = self._task, None
		if task is None or task.done():
			return None
		if task in self._idle:
			task.cancel()
			return task
		self._draining.add(task)
		task.add_done_callback(self._draining.discard)
		return None

	async def stop(self) -> None:
		cancelled = self._detach()
		if cancelled is not None:
			try:
				await cancelled
			except asyncio.CancelledError:
				pass

	async def rebind(self, fetch: Fetch, apply: Apply) -> None:
		"""Point the poller at a different view and restart it."""
		await self.stop()
		self._fetch = fetch
		self._apply = apply
		self.start()

	async def refresh(self, generation: Optional[int] = None) -> bool:
		"""Fetch once; returns whether the result was applied."""
		expected = self._generation if generation is None else generation
		apply = self._apply
		result = await self._fetch()
		if expected != self._generation:
			logger.debug("poll_result_discarded", extra={"generation": expected})
			return False
		apply(result)
		return True

	async def _run(self, generation: int) -> None:
		task = asyncio.current_task()
		while generation == self._generation:
			try:
				await self.refresh(generation)
			except AuthExpired:
				if generation == self._generation:
					self._generation += 1
				return
			except ApiError as exc:
				logger.warning("poll_failed", extra={"error": str(exc)})
				if self._on_error is not None:
					self._on_error(exc)
			except Exception:
				logger.exception("poll_unexpected_error")
			if generation != self._generation:
				return
			self._idle.add(task)
			try:
				await asyncio.sleep(self._interval)
			finally:
				self._idle.discard(task)
