from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from askscene.config import TimingConfig
from askscene.infrastructure.errors import VoiceQueryError
from askscene.infrastructure.observability import log
from askscene.infrastructure.scheduler import Scheduler, TimerHandle


class RetryDecision(str, Enum):
	RETRY = "retry"
	RECOVER = "recover"


@dataclass
class RetryState:
	consecutive_errors: int = 0
	last_error_at: Optional[float] = None
	recovering: bool = False


class RetryRecoveryPolicy:
	"""
	Bounded retry around recognizer start failures.

	Below max_attempts a failure asks for a retry after retry_delay. The
	failure that reaches max_attempts switches to recovery: for
	retry_delay * recovery_multiplier seconds the engine refuses to start,
	then a single capability recheck decides whether it comes back.
	"""

	def __init__(self, scheduler: Scheduler, max_attempts: int = 3, retry_delay: float = 2.0, recovery_multiplier: int = 3) -> None:
		self._scheduler = scheduler
		self._max_attempts = max_attempts
		self._retry_delay = retry_delay
		self._recovery_multiplier = recovery_multiplier
		self._state = RetryState()
		self._retry_timer: Optional[TimerHandle] = None
		self._recovery_timer: Optional[TimerHandle] = None

	@classmethod
	def from_timing(cls, scheduler: Scheduler, timing: TimingConfig) -> "RetryRecoveryPolicy":
		return cls(scheduler, timing.max_retry_attempts, timing.retry_delay, timing.recovery_multiplier)

	@property
	def state(self) -> RetryState:
		return replace(self._state)

	@property
	def consecutive_errors(self) -> int:
		return self._state.consecutive_errors

	@property
	def recovering(self) -> bool:
		return self._state.recovering

	@property
	def recovery_delay(self) -> float:
		return self._retry_delay * self._recovery_multiplier

	def record_failure(self, error: VoiceQueryError) -> RetryDecision:
		self._state.consecutive_errors += 1
		self._state.last_error_at = self._scheduler.now()
		decision = RetryDecision.RECOVER if self._state.consecutive_errors >= self._max_attempts else RetryDecision.RETRY
		log("retry.failure", {
			"code": error.code,
			"attempt": self._state.consecutive_errors,
			"max": self._max_attempts,
			"decision": decision.value,
		}, level="warn")
		return decision

	def record_success(self) -> None:
		if self._state.consecutive_errors:
			log("retry.reset", {"after_errors": self._state.consecutive_errors})
		self._state.consecutive_errors = 0
		self._state.last_error_at = None

	def schedule_retry(self, callback: Callable[[], None]) -> None:
		self._cancel_retry()

		def fire() -> None:
			self._retry_timer = None
			callback()

		self._retry_timer = self._scheduler.call_later(self._retry_delay, fire)

	def begin_recovery(self, recheck: Callable[[], bool], on_finished: Callable[[bool], None]) -> None:
		self._cancel_retry()
		self._cancel_recovery()
		self._state.recovering = True
		log("retry.recovering", {"delay_s": self.recovery_delay})

		def finish() -> None:
			self._recovery_timer = None
			capable = bool(recheck())
			self._state.recovering = False
			if capable:
				self._state.consecutive_errors = 0
				self._state.last_error_at = None
			log("retry.recovered" if capable else "retry.recovery_failed", {"capable": capable})
			on_finished(capable)

		self._recovery_timer = self._scheduler.call_later(self.recovery_delay, finish)

	def cancel(self) -> None:
		self._cancel_retry()
		if self._recovery_timer is not None:
			self._cancel_recovery()
			self._state.recovering = False

	def reset(self) -> None:
		self.cancel()
		self._state = RetryState()

	def _cancel_retry(self) -> None:
		if self._retry_timer is not None:
			self._retry_timer.cancel()
			self._retry_timer = None

	def _cancel_recovery(self) -> None:
		if self._recovery_timer is not None:
			self._recovery_timer.cancel()
			self._recovery_timer = None
