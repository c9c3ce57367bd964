"""Shared fixtures: a manual clock and fake speech collaborators."""
from __future__ import annotations
from typing import Any, Callable, List, Optional, Tuple

import pytest

from askscene.adapters.base import CueSound, RecognitionCallback, RecognizerBackend, SpeechOutput
from askscene.config import EngineConfig
from askscene.controller import VoiceQueryController
from askscene.infrastructure.scheduler import Scheduler, TimerHandle
from askscene.infrastructure.schemas import BaseEvent
from askscene.modules.scene.models import BoundingBox, TrackedObjectSnapshot


class ManualTimer(TimerHandle):
	def __init__(self, when: float, seq: int, callback: Callable[..., Any], args: Tuple[Any, ...]) -> None:
		self.when = when
		self.seq = seq
		self._callback = callback
		self._args = args
		self._cancelled = False

	def cancel(self) -> None:
		self._cancelled = True

	@property
	def cancelled(self) -> bool:
		return self._cancelled

	def fire(self) -> None:
		self._callback(*self._args)


class ManualScheduler(Scheduler):
	"""Deterministic clock. Nothing runs until advance() is called."""

	def __init__(self) -> None:
		self._now = 0.0
		self._seq = 0
		self._timers: List[ManualTimer] = []

	def now(self) -> float:
		return self._now

	def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
		self._seq += 1
		timer = ManualTimer(self._now + max(0.0, delay), self._seq, callback, args)
		self._timers.append(timer)
		return timer

	def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
		self.call_later(0.0, callback, *args)

	def pending(self) -> List[ManualTimer]:
		return [t for t in self._timers if not t.cancelled]

	def advance(self, seconds: float) -> None:
		target = self._now + seconds
		while True:
			due = [t for t in self._timers if not t.cancelled and t.when <= target + 1e-9]
			if not due:
				break
			timer = min(due, key=lambda t: (t.when, t.seq))
			self._timers.remove(timer)
			self._now = max(self._now, timer.when)
			timer.fire()
		self._timers = [t for t in self._timers if not t.cancelled]
		self._now = target

	def run_pending(self) -> None:
		self.advance(0.0)


class FakeRecognizer(RecognizerBackend):
	def __init__(self) -> None:
		self.available = True
		self.on_device = True
		self.permission = True
		self.prime_ok = True
		self.prime_error: Optional[Exception] = None
		self.begin_error: Optional[Exception] = None
		self.prime_calls = 0
		self.begin_calls = 0
		self.end_calls = 0
		self.capturing = False
		self._on_event: Optional[RecognitionCallback] = None

	def is_available(self) -> bool:
		return self.available

	@property
	def supports_on_device(self) -> bool:
		return self.on_device

	def request_permission(self) -> bool:
		return self.permission

	def prime_session(self) -> bool:
		self.prime_calls += 1
		if self.prime_error is not None:
			raise self.prime_error
		return self.prime_ok

	def begin_capture(self, on_event: RecognitionCallback) -> None:
		self.begin_calls += 1
		if self.begin_error is not None:
			raise self.begin_error
		self.capturing = True
		self._on_event = on_event

	def end_capture(self) -> None:
		self.end_calls += 1
		self.capturing = False

	def emit(self, event: BaseEvent) -> None:
		assert self._on_event is not None, "no capture was started"
		self._on_event(event)


class FakeOutput(SpeechOutput):
	def __init__(self) -> None:
		self.calls: List[Tuple[str, ...]] = []

	def interrupt_and_stop(self, reason: str) -> None:
		self.calls.append(("interrupt", reason))

	def speak(self, text: str) -> None:
		self.calls.append(("speak", text))

	def resume(self) -> None:
		self.calls.append(("resume",))

	@property
	def spoken(self) -> List[str]:
		return [c[1] for c in self.calls if c[0] == "speak"]

	@property
	def resumes(self) -> int:
		return sum(1 for c in self.calls if c[0] == "resume")


class FakeCue(CueSound):
	def __init__(self, duration: float = 0.3) -> None:
		self.duration = duration
		self.plays = 0

	def play(self) -> float:
		self.plays += 1
		return self.duration


def make_object(object_id: int, label: str, score: float = 0.5, center_x: float = 0.5, distance: Optional[float] = None) -> TrackedObjectSnapshot:
	return TrackedObjectSnapshot(
		object_id=object_id,
		label=label,
		score=score,
		bbox=BoundingBox(center_x - 0.05, 0.4, 0.1, 0.2),
		distance=distance,
	)


@pytest.fixture
def obj():
	return make_object


@pytest.fixture
def scheduler() -> ManualScheduler:
	return ManualScheduler()


@pytest.fixture
def recognizer() -> FakeRecognizer:
	return FakeRecognizer()


@pytest.fixture
def output() -> FakeOutput:
	return FakeOutput()


@pytest.fixture
def cue() -> FakeCue:
	return FakeCue()


@pytest.fixture
def config() -> EngineConfig:
	return EngineConfig()


@pytest.fixture
def controller(scheduler, recognizer, output, cue, config) -> VoiceQueryController:
	ctrl = VoiceQueryController(scheduler, recognizer, output, cue, config=config)
	assert ctrl.refresh_capability()
	return ctrl


@pytest.fixture
def listen(controller, scheduler):
	"""Start a single question and run the clock until the microphone is open."""
	def _listen() -> None:
		assert controller.start_single_question()
		scheduler.advance(0.5)   # settle
		scheduler.advance(0.8)   # max(0.8, 0.3 cue + 0.2 tail)
	return _listen
