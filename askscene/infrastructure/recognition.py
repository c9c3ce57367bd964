"""
Decides when a transcript is done.

The recognizer streams partial and final transcripts. A final one ends the
capture at once. Some backends never send a final result, so every partial
restarts a quiet-period timer and, if nothing else arrives before it fires,
the last partial is used. A recognizer error after a partial was heard is
swallowed in favour of that partial.
"""
from __future__ import annotations
from typing import Callable, Optional

from askscene.infrastructure.errors import NoSpeechDetected, RecognitionFailure, VoiceQueryError
from askscene.infrastructure.observability import log
from askscene.infrastructure.scheduler import Scheduler, TimerHandle
from askscene.infrastructure.schemas import (
	NO_SPEECH,
	BaseEvent,
	FinalTranscript,
	PartialTranscript,
	RecognitionErrorEvent,
)


class RecognitionResultAggregator:
	def __init__(
		self,
		scheduler: Scheduler,
		quiet_period: float,
		on_finalized: Callable[[str], None],
		on_failed: Callable[[VoiceQueryError], None],
	) -> None:
		self._scheduler = scheduler
		self._quiet_period = quiet_period
		self._on_finalized = on_finalized
		self._on_failed = on_failed
		self._quiet_timer: Optional[TimerHandle] = None
		self._last_partial: str = ""
		self._last_partial_at: Optional[float] = None
		self._done = True

	@property
	def last_partial(self) -> str:
		return self._last_partial

	@property
	def last_partial_at(self) -> Optional[float]:
		return self._last_partial_at

	@property
	def active(self) -> bool:
		return not self._done

	def reset(self) -> None:
		self._cancel_timer()
		self._last_partial = ""
		self._last_partial_at = None
		self._done = False

	def cancel(self) -> None:
		self._cancel_timer()
		self._done = True

	def handle(self, event: BaseEvent) -> None:
		if self._done:
			return
		if isinstance(event, FinalTranscript):
			text = event.text.strip() or self._last_partial
			if text:
				self._finalize(text, "final")
			else:
				self._fail(NoSpeechDetected(), "empty_final")
		elif isinstance(event, PartialTranscript):
			text = event.text.strip()
			if text:
				self._last_partial = text
				self._last_partial_at = self._scheduler.now()
			self._cancel_timer()
			self._quiet_timer = self._scheduler.call_later(self._quiet_period, self._on_quiet_period)
		elif isinstance(event, RecognitionErrorEvent):
			if self._last_partial:
				log("recognition.error_suppressed", {"kind": event.kind, "partial": self._last_partial})
				self._finalize(self._last_partial, "error_with_partial")
				return
			if event.kind == NO_SPEECH:
				self._fail(NoSpeechDetected(event.message or None), event.kind)
			else:
				self._fail(RecognitionFailure(event.message or None), event.kind)

	def _on_quiet_period(self) -> None:
		self._quiet_timer = None
		if self._done:
			return
		if self._last_partial:
			self._finalize(self._last_partial, "quiet_period")
		# An empty partial keeps listening; the emergency timeout or a later event ends the capture.

	def _finalize(self, text: str, reason: str) -> None:
		self._cancel_timer()
		self._done = True
		log("recognition.finalized", {"reason": reason, "text": text})
		self._on_finalized(text)

	def _fail(self, error: VoiceQueryError, reason: str) -> None:
		self._cancel_timer()
		self._done = True
		log("recognition.failed", {"reason": reason, "code": error.code}, level="warn")
		self._on_failed(error)

	def _cancel_timer(self) -> None:
		if self._quiet_timer is not None:
			self._quiet_timer.cancel()
			self._quiet_timer = None
