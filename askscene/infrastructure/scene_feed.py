from __future__ import annotations
from typing import List, Sequence, Tuple
import threading

from askscene.modules.scene.models import TrackedObjectSnapshot


class SceneFeed:
	"""Latest tracker snapshot. Replaced wholesale; readers get one consistent tuple."""

	def __init__(self) -> None:
		self._lock = threading.Lock()
		self._snapshot: Tuple[TrackedObjectSnapshot, ...] = ()
		self._updates = 0

	def update(self, snapshot: Sequence[TrackedObjectSnapshot]) -> None:
		frozen = tuple(snapshot)
		with self._lock:
			self._snapshot = frozen
			self._updates += 1

	def latest(self) -> List[TrackedObjectSnapshot]:
		with self._lock:
			return list(self._snapshot)

	@property
	def updates(self) -> int:
		with self._lock:
			return self._updates
