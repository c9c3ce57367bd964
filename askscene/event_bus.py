import asyncio
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from askscene.infrastructure.observability import log


Subscriber = Callable[[str, Any], Awaitable[None]]


class EventBus:
	"""
	Simple in-process async pub/sub with per-topic subscribers.
	Each publish carries a request_id for tracing; if not provided, one is generated.
	The voice-query session runs on plain loop callbacks, so it publishes with
	publish_nowait() and lets the handlers run as their own task.
	"""

	def __init__(self) -> None:
		self._subscribers: Dict[str, List[Subscriber]] = {}
		self._lock = asyncio.Lock()
		self._pending: Set["asyncio.Task[str]"] = set()

	async def subscribe(self, topic: str, handler: Subscriber) -> None:
		async with self._lock:
			self._subscribers.setdefault(topic, []).append(handler)

	async def unsubscribe(self, topic: str, handler: Subscriber) -> None:
		async with self._lock:
			if topic in self._subscribers:
				self._subscribers[topic] = [h for h in self._subscribers[topic] if h != handler]
				if not self._subscribers[topic]:
					self._subscribers.pop(topic, None)

	async def publish(self, topic: str, payload: Any, request_id: Optional[str] = None) -> str:
		request_id = request_id or str(uuid.uuid4())
		async with self._lock:
			handlers = list(self._subscribers.get(topic, []))
		# Dispatch without holding the lock
		await asyncio.gather(*(h(topic, {"request_id": request_id, "payload": payload, "ts": time.time()}) for h in handlers))
		return request_id

	def publish_nowait(self, topic: str, payload: Any, request_id: Optional[str] = None) -> Optional["asyncio.Task[str]"]:
		if not self.has_subscribers(topic):
			return None
		# Subscribers are coroutines, so they can only exist alongside a running loop.
		loop = asyncio.get_running_loop()
		task = loop.create_task(self.publish(topic, payload, request_id=request_id))
		self._pending.add(task)
		task.add_done_callback(lambda t: self._on_published(topic, t))
		return task

	def _on_published(self, topic: str, task: "asyncio.Task[str]") -> None:
		self._pending.discard(task)
		if task.cancelled():
			return
		error = task.exception()
		if error is not None:
			log("bus.handler_error", {"topic": topic, "error": repr(error)}, level="error")

	@property
	def pending(self) -> int:
		return len(self._pending)

	def has_subscribers(self, topic: str) -> bool:
		return topic in self._subscribers and len(self._subscribers[topic]) > 0
