from __future__ import annotations
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from askscene.adapters.base import CueSound, RecognizerBackend, SpeechOutput
from askscene.config import ERROR_MESSAGES, UNAVAILABLE_MESSAGE, EngineConfig
from askscene.event_bus import EventBus
from askscene.infrastructure.errors import (
	CapabilityUnavailable,
	PermissionDenied,
	SessionBusy,
	VoiceQueryError,
)
from askscene.infrastructure.observability import log, timed
from askscene.infrastructure.question_fsm import ListeningMode, QuestionSession, SessionState
from askscene.infrastructure.scene_feed import SceneFeed
from askscene.infrastructure.scheduler import Scheduler
from askscene.infrastructure.schemas import BaseEvent, InteractionDisabled, ResponseReady
from askscene.modules.language.question_parser import ParsedQuestion, QuestionParser
from askscene.modules.responses.response_generator import ResponseGenerator
from askscene.modules.scene.models import TrackedObjectSnapshot
from askscene.modules.scene.scene_analyzer import SceneAnalyzer

SnapshotItem = Union[TrackedObjectSnapshot, Mapping[str, Any]]


class VoiceQueryController:
	"""
	Entry point for the UI and the perception pipeline.

	Wires the question session to the scene feed, the parser, the analyzer
	and the response generator, and owns the interaction-enabled flag that
	capability checks switch on and off.
	"""

	def __init__(
		self,
		scheduler: Scheduler,
		recognizer: RecognizerBackend,
		output: SpeechOutput,
		cue: CueSound,
		config: Optional[EngineConfig] = None,
		bus: Optional[EventBus] = None,
		feed: Optional[SceneFeed] = None,
	) -> None:
		self._config = config or EngineConfig()
		self._recognizer = recognizer
		self._output = output
		self._bus = bus
		self._feed = feed or SceneFeed()
		self._parser = QuestionParser()
		self._analyzer = SceneAnalyzer(self._config.scene)
		self._generator = ResponseGenerator(self._config.scene)
		self._session = QuestionSession(
			scheduler,
			recognizer,
			output,
			cue,
			answer=self._answer,
			config=self._config,
			bus=bus,
			recheck=self._capability_ok,
			on_disabled=self._on_session_disabled,
		)

		self._interaction_enabled = True
		self._capable: Optional[bool] = None
		self._disabled_reported = False
		self._questions = 0
		self._last_question: Optional[ParsedQuestion] = None
		self._last_answer = ""

	# Status

	@property
	def session(self) -> QuestionSession:
		return self._session

	@property
	def feed(self) -> SceneFeed:
		return self._feed

	@property
	def state(self) -> SessionState:
		return self._session.state

	@property
	def is_listening(self) -> bool:
		return self._session.state == SessionState.LISTENING

	@property
	def is_waiting_for_question(self) -> bool:
		return (
			self._session.state in (SessionState.PRIMING, SessionState.LISTENING)
			and self._session.mode == ListeningMode.SINGLE_QUESTION
		)

	@property
	def is_continuous(self) -> bool:
		return self._session.continuous

	@property
	def last_recognized_text(self) -> str:
		return self._session.last_recognized_text

	@property
	def interaction_enabled(self) -> bool:
		return self._interaction_enabled

	def is_ready_for_question(self) -> bool:
		return (
			self._interaction_enabled
			and bool(self._capable)
			and self._session.state == SessionState.IDLE
			and not self._session.policy.recovering
		)

	# Capability

	def _capability_error(self) -> Optional[VoiceQueryError]:
		if not self._recognizer.is_available():
			return CapabilityUnavailable("speech recognizer not available")
		if not self._recognizer.supports_on_device:
			return CapabilityUnavailable("on-device recognition not supported")
		if not self._recognizer.request_permission():
			return PermissionDenied("microphone permission denied")
		return None

	def _capability_ok(self) -> bool:
		return self._capability_error() is None

	def refresh_capability(self) -> bool:
		error = self._capability_error()
		if error is not None:
			if self._session.state != SessionState.IDLE or self._session.continuous:
				# Release the microphone and any pending timers or retry before reporting.
				self._session.stop()
			self._disable(error, speak=True)
			return False
		was_disabled = not self._interaction_enabled
		self._capable = True
		self._interaction_enabled = True
		self._disabled_reported = False
		if self._session.state == SessionState.IDLE:
			self._session.policy.reset()
		log("controller.capability_ok", {"re_enabled": was_disabled})
		return True

	def _disable(self, error: VoiceQueryError, speak: bool) -> None:
		self._interaction_enabled = False
		self._capable = False
		log("controller.interaction_disabled", {"code": error.code, "message": error.message}, level="warn")
		if speak and not self._disabled_reported:
			self._output.speak(ERROR_MESSAGES.get(error.code, UNAVAILABLE_MESSAGE))
		self._disabled_reported = True
		if self._bus is not None:
			self._bus.publish_nowait("InteractionDisabled", InteractionDisabled(code=error.code, message=error.message))

	def _on_session_disabled(self, error: VoiceQueryError) -> None:
		# The session has already spoken about it.
		self._disable(error, speak=False)

	# Commands

	def _usable(self) -> bool:
		if self._capable is None:
			self.refresh_capability()
		if not (self._interaction_enabled and self._capable):
			log("controller.unavailable", {"enabled": self._interaction_enabled, "capable": self._capable})
			self._output.speak(UNAVAILABLE_MESSAGE)
			return False
		return True

	def _start(self, mode: ListeningMode) -> bool:
		try:
			self._session.start(mode)
		except SessionBusy as e:
			log("controller.busy", {"mode": mode.value, "reason": e.message})
			return False
		return True

	def start_single_question(self) -> bool:
		if not self._usable():
			return False
		if self._session.continuous and self._session.mode == ListeningMode.ACTIVATION and self._session.state in (SessionState.PRIMING, SessionState.LISTENING):
			# Skip the activation phrase: ask straight away.
			self._session.stop()
		return self._start(ListeningMode.SINGLE_QUESTION)

	def start_continuous_listening(self) -> bool:
		if not self._usable():
			return False
		return self._start(ListeningMode.ACTIVATION)

	def stop_continuous_listening(self) -> None:
		if self._session.continuous:
			self._session.stop()

	def toggle_listening(self) -> bool:
		"""Switch continuous listening on or off. Returns whether it is on afterwards."""
		if self._session.continuous:
			self.stop_continuous_listening()
			return False
		return self.start_continuous_listening()

	def stop(self) -> None:
		self._session.stop()

	def update_important_objects(self, snapshot: Sequence[SnapshotItem]) -> None:
		objects = [o if isinstance(o, TrackedObjectSnapshot) else TrackedObjectSnapshot.from_dict(o) for o in snapshot]
		self._feed.update(objects)

	def on_recognition_event(self, event: BaseEvent) -> None:
		self._session.submit_recognition_event(event)

	# Answering

	def _answer(self, text: str) -> str:
		with timed("controller.answer") as timing:
			parsed = self._parser.parse(text)
			analysis = self._analyzer.analyze(self._feed.latest())
			answer = self._generator.generate(parsed, analysis)
		latency_ms = timing["duration_ms"]

		self._questions += 1
		self._last_question = parsed
		self._last_answer = answer
		if self._bus is not None:
			self._bus.publish_nowait("QuestionAnswered", ResponseReady(
				question=text,
				intent=parsed.type.value,
				target_object=parsed.target_object,
				confidence=parsed.confidence,
				answer=answer,
				latency_ms=latency_ms,
			))
		return answer

	def answer_text(self, text: str) -> str:
		"""Answer a typed question against the current scene, bypassing speech."""
		return self._answer(text)

	def get_stats(self) -> str:
		retry = self._session.policy.state
		lines = [
			f"Voice interaction: {'enabled' if self._interaction_enabled else 'disabled'}",
			f"Recognizer capable: {'unknown' if self._capable is None else ('yes' if self._capable else 'no')}",
			f"State: {self._session.state.value}",
			f"Continuous listening: {'on' if self._session.continuous else 'off'}",
			f"Questions answered: {self._questions}",
			f"Last recognized text: '{self._session.last_recognized_text}'",
			f"Consecutive errors: {retry.consecutive_errors}",
			f"Recovering: {'yes' if retry.recovering else 'no'}",
			f"Objects in scene: {len(self._feed.latest())}",
		]
		if self._last_question is not None:
			lines.append(f"Last intent: {self._last_question.type.value}")
		if self._session.last_error is not None:
			lines.append(f"Last error: {self._session.last_error.code}")
		return "\n".join(lines)

	def stats(self) -> Dict[str, Any]:
		retry = self._session.policy.state
		return {
			"interaction_enabled": self._interaction_enabled,
			"state": self._session.state.value,
			"questions": self._questions,
			"consecutive_errors": retry.consecutive_errors,
			"recovering": retry.recovering,
			"last_answer": self._last_answer,
		}
