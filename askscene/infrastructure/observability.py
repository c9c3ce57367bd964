from __future__ import annotations
import time
from contextlib import contextmanager
from typing import Dict, Any, Optional


def log(event: str, data: Optional[Dict[str, Any]] = None, level: str = "info") -> None:
	stamp = time.strftime("%H:%M:%S")
	payload = f" {data}" if data else ""
	prefix = "askscene" if level == "info" else f"askscene {level.upper()}"
	print(f"[{prefix} {stamp}] {event}{payload}", flush=True)


@contextmanager
def timed(event: str, extra: Optional[Dict[str, Any]] = None):
	"""Log how long the block took. The yielded dict gets `duration_ms` on exit."""
	start = time.time()
	result: Dict[str, Any] = {}
	try:
		yield result
	finally:
		result["duration_ms"] = (time.time() - start) * 1000.0
		log(event, {"duration_ms": int(result["duration_ms"]), **(extra or {})})
