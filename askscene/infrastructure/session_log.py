"""
Per-run JSON log of the voice-query engine.

Subscribes to the event bus and keeps every answered question, error and
state change of one run in a single JSON file, with a summary written when
the run is finalized.
"""
from __future__ import annotations
import json
import os
import statistics
import threading
import time
import uuid
from dataclasses import asdict, dataclass, is_dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from askscene.event_bus import EventBus
from askscene.infrastructure.observability import log

TOPICS = ("SessionStateChanged", "QuestionAnswered", "SessionError", "InteractionDisabled")


@dataclass
class LogEntry:
	timestamp: float
	level: str       # INFO, WARNING, ERROR
	category: str    # question, error, state, system
	event_id: str
	message: str
	data: Optional[Dict[str, Any]] = None


@dataclass
class SessionSummary:
	session_id: str
	start_time: float
	end_time: float
	duration_minutes: float
	total_questions: int
	questions_by_intent: Dict[str, int]
	average_answer_latency_ms: float
	total_errors: int
	errors_by_code: Dict[str, int]
	state_changes: int


class SessionLog:
	def __init__(self, output_dir: str = "askscene_logs") -> None:
		self.output_dir = output_dir
		os.makedirs(output_dir, exist_ok=True)
		self.session_id = str(uuid.uuid4())[:8]
		self.session_start = time.time()
		stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
		self.log_file = os.path.join(output_dir, f"askscene_session_{stamp}_{self.session_id}.json")

		self._lock = threading.Lock()
		self._entries: List[LogEntry] = []
		self._latencies: List[float] = []
		self._intents: Dict[str, int] = {}
		self._errors: Dict[str, int] = {}
		self._state_changes = 0

	async def attach(self, bus: EventBus) -> None:
		for topic in TOPICS:
			await bus.subscribe(topic, self._on_event)

	async def _on_event(self, topic: str, envelope: Dict[str, Any]) -> None:
		payload = envelope["payload"]
		data = asdict(payload) if is_dataclass(payload) else dict(payload or {})
		data["request_id"] = envelope.get("request_id")
		if topic == "QuestionAnswered":
			self.log_question(data.get("intent", ""), data.get("latency_ms", 0.0), data)
		elif topic in ("SessionError", "InteractionDisabled"):
			self.log_error(data.get("code", topic), data.get("message", ""), data)
		else:
			with self._lock:
				self._state_changes += 1
			self.log("INFO", "state", f"{data.get('previous')} -> {data.get('current')}", data)

	def log(self, level: str, category: str, message: str, data: Optional[Dict[str, Any]] = None) -> LogEntry:
		entry = LogEntry(
			timestamp=time.time(),
			level=level,
			category=category,
			event_id=str(uuid.uuid4())[:8],
			message=message,
			data=data,
		)
		with self._lock:
			self._entries.append(entry)
		return entry

	def log_question(self, intent: str, latency_ms: float, data: Optional[Dict[str, Any]] = None) -> None:
		with self._lock:
			self._intents[intent] = self._intents.get(intent, 0) + 1
			if latency_ms > 0:
				self._latencies.append(latency_ms)
		self.log("INFO", "question", f"Answered {intent} question", data)

	def log_error(self, code: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
		with self._lock:
			self._errors[code] = self._errors.get(code, 0) + 1
		self.log("ERROR", "error", f"{code}: {message}", data)

	@property
	def entries(self) -> List[LogEntry]:
		with self._lock:
			return list(self._entries)

	def generate_summary(self) -> SessionSummary:
		with self._lock:
			end = time.time()
			return SessionSummary(
				session_id=self.session_id,
				start_time=self.session_start,
				end_time=end,
				duration_minutes=round((end - self.session_start) / 60.0, 2),
				total_questions=sum(self._intents.values()),
				questions_by_intent=dict(self._intents),
				average_answer_latency_ms=round(statistics.mean(self._latencies), 1) if self._latencies else 0.0,
				total_errors=sum(self._errors.values()),
				errors_by_code=dict(self._errors),
				state_changes=self._state_changes,
			)

	def write(self, summary: Optional[SessionSummary] = None) -> str:
		with self._lock:
			entries = [
				{**asdict(e), "timestamp_iso": datetime.fromtimestamp(e.timestamp).isoformat()}
				for e in self._entries
			]
		data = {
			"session_info": {
				"session_id": self.session_id,
				"start_time": self.session_start,
				"start_time_iso": datetime.fromtimestamp(self.session_start).isoformat(),
			},
			"log_entries": entries,
			"session_summary": asdict(summary) if summary else None,
		}
		with open(self.log_file, "w", encoding="utf-8") as f:
			json.dump(data, f, indent=2, default=str)
		return self.log_file

	def finalize(self) -> SessionSummary:
		summary = self.generate_summary()
		self.write(summary)
		log("session_log.finalized", {
			"file": self.log_file,
			"questions": summary.total_questions,
			"errors": summary.total_errors,
			"avg_latency_ms": summary.average_answer_latency_ms,
		})
		return summary
