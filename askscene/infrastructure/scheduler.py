from __future__ import annotations
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class TimerHandle(ABC):
	@abstractmethod
	def cancel(self) -> None:
		...

	@property
	@abstractmethod
	def cancelled(self) -> bool:
		...


class Scheduler(ABC):
	"""
	Single logical execution context for the voice-query engine.

	Every delayed callback (settle, prime, quiet period, emergency, resume,
	retry, recovery) goes through call_later(), and anything arriving from
	another thread must come in through call_soon_threadsafe(), so callbacks
	that mutate session or retry state never interleave.
	"""

	@abstractmethod
	def now(self) -> float:
		...

	@abstractmethod
	def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
		...

	@abstractmethod
	def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
		...


class _AsyncioTimer(TimerHandle):
	def __init__(self, handle: asyncio.TimerHandle) -> None:
		self._handle = handle

	def cancel(self) -> None:
		self._handle.cancel()

	@property
	def cancelled(self) -> bool:
		return self._handle.cancelled()


class AsyncioScheduler(Scheduler):
	def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
		self._loop = loop or asyncio.get_running_loop()

	@property
	def loop(self) -> asyncio.AbstractEventLoop:
		return self._loop

	def now(self) -> float:
		return self._loop.time()

	def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
		return _AsyncioTimer(self._loop.call_later(max(0.0, delay), callback, *args))

	def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
		self._loop.call_soon_threadsafe(callback, *args)
