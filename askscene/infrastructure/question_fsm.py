"""
Voice question lifecycle.

    Idle -> InterruptingOutput -(settle)-> Priming -(prime)-> Listening
         -(final | quiet period)-> Finalizing -> Responding -(resume)-> Idle

transition() is pure: given the current state, mode and an event it returns
the next state plus the side effects to run, as Command objects.
QuestionSession owns the collaborators and the timers, runs the commands and
feeds any follow-up events back through transition() once the current step
is done, so command execution never re-enters the state machine.
"""
from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Tuple

from askscene.adapters.base import CueSound, RecognizerBackend, SpeechOutput
from askscene.config import ERROR_MESSAGES, RECOVERY_MESSAGE, EngineConfig
from askscene.event_bus import EventBus
from askscene.infrastructure.audio_resource import AudioResource
from askscene.infrastructure.errors import (
	DISABLING_ERRORS,
	CapabilityUnavailable,
	EmergencyTimeout,
	RecognitionFailure,
	RequestCreationFailure,
	SessionBusy,
	VoiceQueryError,
)
from askscene.infrastructure.observability import log
from askscene.infrastructure.recognition import RecognitionResultAggregator
from askscene.infrastructure.retry_policy import RetryDecision, RetryRecoveryPolicy
from askscene.infrastructure.scheduler import Scheduler, TimerHandle
from askscene.infrastructure.schemas import (
	BaseEvent,
	ErrorEvent,
	FinalTranscript,
	PartialTranscript,
	RecognitionErrorEvent,
	SessionStateChanged,
)
from askscene.modules.language.translations import contains_phrase


class SessionState(str, Enum):
	IDLE = "Idle"
	INTERRUPTING_OUTPUT = "InterruptingOutput"
	PRIMING = "Priming"
	LISTENING = "Listening"
	FINALIZING = "Finalizing"
	RESPONDING = "Responding"
	RECOVERING = "Recovering"


class ListeningMode(str, Enum):
	SINGLE_QUESTION = "single_question"
	ACTIVATION = "activation"


class TimerKind(str, Enum):
	SETTLE = "settle"
	PRIME = "prime"
	EMERGENCY = "emergency"
	RESUME = "resume"
	ACTIVATION_WINDOW = "activation_window"


# Events

@dataclass(frozen=True)
class SessionEvent:
	pass


@dataclass(frozen=True)
class StartRequested(SessionEvent):
	mode: ListeningMode = ListeningMode.SINGLE_QUESTION


@dataclass(frozen=True)
class SettleElapsed(SessionEvent):
	pass


@dataclass(frozen=True)
class RecognizerPrimed(SessionEvent):
	cue_duration: float = 0.0


@dataclass(frozen=True)
class PrimeElapsed(SessionEvent):
	pass


@dataclass(frozen=True)
class TranscriptFinalized(SessionEvent):
	text: str = ""


@dataclass(frozen=True)
class ActivationHeard(SessionEvent):
	text: str = ""


@dataclass(frozen=True)
class ActivationWindowElapsed(SessionEvent):
	pass


@dataclass(frozen=True)
class RecognitionFailed(SessionEvent):
	error: VoiceQueryError = field(default_factory=RecognitionFailure)


@dataclass(frozen=True)
class CaptureFailed(SessionEvent):
	error: VoiceQueryError = field(default_factory=RequestCreationFailure)


@dataclass(frozen=True)
class StartFailureRecorded(SessionEvent):
	error: VoiceQueryError
	decision: RetryDecision


@dataclass(frozen=True)
class EmergencyTimeoutElapsed(SessionEvent):
	pass


@dataclass(frozen=True)
class AnswerReady(SessionEvent):
	text: str = ""
	error: bool = False


@dataclass(frozen=True)
class ResumeElapsed(SessionEvent):
	pass


@dataclass(frozen=True)
class RetryElapsed(SessionEvent):
	pass


@dataclass(frozen=True)
class RecoveryFinished(SessionEvent):
	capable: bool = False


@dataclass(frozen=True)
class StopRequested(SessionEvent):
	pass


# Commands

@dataclass(frozen=True)
class Command:
	pass


@dataclass(frozen=True)
class RequestOutputRelease(Command):
	reason: str


@dataclass(frozen=True)
class ConfirmCaptureOwnership(Command):
	pass


@dataclass(frozen=True)
class PrimeRecognizer(Command):
	play_cue: bool = True


@dataclass(frozen=True)
class BeginCapture(Command):
	pass


@dataclass(frozen=True)
class EndCapture(Command):
	pass


@dataclass(frozen=True)
class StartTimer(Command):
	kind: TimerKind
	delay: float


@dataclass(frozen=True)
class CancelTimer(Command):
	kind: TimerKind


@dataclass(frozen=True)
class CancelAllTimers(Command):
	pass


@dataclass(frozen=True)
class AnswerQuestion(Command):
	text: str


@dataclass(frozen=True)
class Apologize(Command):
	error: VoiceQueryError


@dataclass(frozen=True)
class Speak(Command):
	text: str


@dataclass(frozen=True)
class BeginOutputReturn(Command):
	pass


@dataclass(frozen=True)
class CompleteOutputReturn(Command):
	pass


@dataclass(frozen=True)
class ForceOutputReturn(Command):
	pass


@dataclass(frozen=True)
class RecordStartFailure(Command):
	error: VoiceQueryError


@dataclass(frozen=True)
class ScheduleRetry(Command):
	pass


@dataclass(frozen=True)
class BeginRecovery(Command):
	pass


@dataclass(frozen=True)
class CancelRetry(Command):
	pass


@dataclass(frozen=True)
class DisableInteraction(Command):
	error: VoiceQueryError


@dataclass(frozen=True)
class Transition:
	state: SessionState
	mode: ListeningMode
	commands: Tuple[Command, ...] = ()


_CAPTURING = (SessionState.PRIMING, SessionState.LISTENING)


def _begin(mode: ListeningMode, config: EngineConfig) -> Transition:
	return Transition(SessionState.INTERRUPTING_OUTPUT, mode, (
		RequestOutputRelease(config.interrupt_reason),
		StartTimer(TimerKind.SETTLE, config.timing.settle_delay),
	))


def transition(state: SessionState, mode: ListeningMode, event: SessionEvent, config: EngineConfig) -> Transition:
	timing = config.timing
	single = mode == ListeningMode.SINGLE_QUESTION
	stay = Transition(state, mode)

	if isinstance(event, StopRequested):
		return Transition(SessionState.IDLE, mode, (CancelAllTimers(), EndCapture(), ForceOutputReturn(), CancelRetry()))

	if state == SessionState.IDLE:
		if isinstance(event, StartRequested):
			return _begin(event.mode, config)
		if isinstance(event, RetryElapsed) and mode == ListeningMode.ACTIVATION:
			return _begin(mode, config)
		return stay

	if state == SessionState.INTERRUPTING_OUTPUT:
		if isinstance(event, SettleElapsed):
			commands: List[Command] = [ConfirmCaptureOwnership()]
			if single:
				commands.append(StartTimer(TimerKind.EMERGENCY, timing.emergency_timeout))
			commands.append(PrimeRecognizer(play_cue=single))
			return Transition(SessionState.PRIMING, mode, tuple(commands))
		return stay

	if state in _CAPTURING:
		if isinstance(event, CaptureFailed):
			if isinstance(event.error, DISABLING_ERRORS):
				return Transition(SessionState.FINALIZING, mode, (
					CancelAllTimers(), EndCapture(), DisableInteraction(event.error), Apologize(event.error),
				))
			return Transition(SessionState.FINALIZING, mode, (
				CancelAllTimers(), EndCapture(), RecordStartFailure(event.error),
			))
		if isinstance(event, EmergencyTimeoutElapsed) and single:
			return Transition(SessionState.FINALIZING, mode, (
				CancelAllTimers(), EndCapture(), Apologize(EmergencyTimeout()),
			))

	if state == SessionState.PRIMING:
		if isinstance(event, RecognizerPrimed):
			delay = timing.prime_delay(event.cue_duration) if single else timing.activation_restart_delay
			return Transition(state, mode, (StartTimer(TimerKind.PRIME, delay),))
		if isinstance(event, PrimeElapsed):
			commands = [BeginCapture()]
			if not single:
				commands.append(StartTimer(TimerKind.ACTIVATION_WINDOW, timing.activation_window))
			return Transition(SessionState.LISTENING, mode, tuple(commands))
		return stay

	if state == SessionState.LISTENING:
		if single:
			if isinstance(event, TranscriptFinalized):
				return Transition(SessionState.FINALIZING, mode, (
					CancelTimer(TimerKind.EMERGENCY), EndCapture(), AnswerQuestion(event.text),
				))
			if isinstance(event, RecognitionFailed):
				return Transition(SessionState.FINALIZING, mode, (
					CancelTimer(TimerKind.EMERGENCY), EndCapture(), Apologize(event.error),
				))
			return stay
		if isinstance(event, ActivationHeard):
			return Transition(SessionState.PRIMING, ListeningMode.SINGLE_QUESTION, (
				CancelTimer(TimerKind.ACTIVATION_WINDOW),
				EndCapture(),
				StartTimer(TimerKind.EMERGENCY, timing.emergency_timeout),
				PrimeRecognizer(play_cue=True),
			))
		if isinstance(event, (ActivationWindowElapsed, RecognitionFailed)):
			return Transition(SessionState.PRIMING, mode, (
				CancelTimer(TimerKind.ACTIVATION_WINDOW), EndCapture(), PrimeRecognizer(play_cue=False),
			))
		return stay

	if state == SessionState.FINALIZING:
		if isinstance(event, AnswerReady):
			delay = timing.error_resume_delay if event.error else timing.resume_delay
			return Transition(SessionState.RESPONDING, mode, (
				Speak(event.text), BeginOutputReturn(), StartTimer(TimerKind.RESUME, delay),
			))
		if isinstance(event, StartFailureRecorded):
			if event.decision == RetryDecision.RECOVER:
				return Transition(SessionState.RECOVERING, mode, (
					ForceOutputReturn(), Speak(RECOVERY_MESSAGE), BeginRecovery(),
				))
			if single:
				return Transition(state, mode, (Apologize(event.error),))
			return Transition(SessionState.IDLE, mode, (ForceOutputReturn(), ScheduleRetry()))
		return stay

	if state == SessionState.RESPONDING:
		if isinstance(event, ResumeElapsed):
			return Transition(SessionState.IDLE, mode, (CompleteOutputReturn(),))
		return stay

	if state == SessionState.RECOVERING:
		if isinstance(event, RecoveryFinished):
			if event.capable:
				return Transition(SessionState.IDLE, mode)
			error = CapabilityUnavailable("recognition still unavailable after recovery")
			return Transition(SessionState.IDLE, mode, (DisableInteraction(error), Speak(ERROR_MESSAGES[error.code])))
		return stay

	return stay


_TIMER_EVENTS: Dict[TimerKind, Callable[[], SessionEvent]] = {
	TimerKind.SETTLE: SettleElapsed,
	TimerKind.PRIME: PrimeElapsed,
	TimerKind.EMERGENCY: EmergencyTimeoutElapsed,
	TimerKind.RESUME: ResumeElapsed,
	TimerKind.ACTIVATION_WINDOW: ActivationWindowElapsed,
}

# Events after which a continuous-listening session goes back to waiting for an activation phrase.
_RESUMES_CONTINUOUS = (ResumeElapsed, RecoveryFinished)


class QuestionSession:
	"""
	Runs transition() against the real collaborators.

	Everything here is expected to run on the scheduler's execution context.
	Recognizer callbacks are marshalled with call_soon_threadsafe before they
	touch any state.
	"""

	def __init__(
		self,
		scheduler: Scheduler,
		recognizer: RecognizerBackend,
		output: SpeechOutput,
		cue: CueSound,
		answer: Callable[[str], str],
		config: Optional[EngineConfig] = None,
		policy: Optional[RetryRecoveryPolicy] = None,
		bus: Optional[EventBus] = None,
		recheck: Optional[Callable[[], bool]] = None,
		on_disabled: Optional[Callable[[VoiceQueryError], None]] = None,
	) -> None:
		self._scheduler = scheduler
		self._recognizer = recognizer
		self._cue = cue
		self._answer = answer
		self._config = config or EngineConfig()
		self._policy = policy or RetryRecoveryPolicy.from_timing(scheduler, self._config.timing)
		self._bus = bus
		self._recheck = recheck or recognizer.is_available
		self._on_disabled = on_disabled
		self._audio = AudioResource(output)
		self._output = output
		self._aggregator = RecognitionResultAggregator(
			scheduler,
			self._config.timing.quiet_period,
			on_finalized=lambda text: self._dispatch(TranscriptFinalized(text)),
			on_failed=lambda error: self._dispatch(RecognitionFailed(error)),
		)

		self._state = SessionState.IDLE
		self._mode = ListeningMode.SINGLE_QUESTION
		self._continuous = False
		self._generation = 0
		self._capture_id = 0
		self._timers: Dict[TimerKind, TimerHandle] = {}
		self._queue: Deque[SessionEvent] = deque()
		self._processing = False
		self.last_recognized_text: str = ""
		self.last_error: Optional[VoiceQueryError] = None
		self._last_reported: Optional[VoiceQueryError] = None

	# Status

	@property
	def state(self) -> SessionState:
		return self._state

	@property
	def mode(self) -> ListeningMode:
		return self._mode

	@property
	def continuous(self) -> bool:
		return self._continuous

	@property
	def audio(self) -> AudioResource:
		return self._audio

	@property
	def policy(self) -> RetryRecoveryPolicy:
		return self._policy

	@property
	def aggregator(self) -> RecognitionResultAggregator:
		return self._aggregator

	def active_timers(self) -> List[TimerKind]:
		return [kind for kind, handle in self._timers.items() if not handle.cancelled]

	# Entry points

	def start(self, mode: ListeningMode = ListeningMode.SINGLE_QUESTION) -> None:
		if self._state != SessionState.IDLE or self._policy.recovering:
			raise SessionBusy(f"session is {self._state.value}")
		self._continuous = mode == ListeningMode.ACTIVATION
		self._dispatch(StartRequested(mode))

	def stop(self) -> None:
		self._continuous = False
		self._dispatch(StopRequested())

	def submit_recognition_event(self, event: BaseEvent) -> None:
		"""Thread-safe: may be called from the recognizer's audio thread."""
		self._scheduler.call_soon_threadsafe(self._on_capture_event, self._capture_id, event)

	def handle_recognition_event(self, event: BaseEvent) -> None:
		self._on_capture_event(self._capture_id, event)

	# Recognizer events

	def _on_capture_event(self, capture_id: int, event: BaseEvent) -> None:
		if capture_id != self._capture_id or self._state != SessionState.LISTENING:
			log("session.event_dropped", {"event": type(event).__name__, "state": self._state.value})
			return
		text = getattr(event, "text", "").strip() if isinstance(event, (PartialTranscript, FinalTranscript)) else ""
		if text:
			self._policy.record_success()
			self.last_recognized_text = text

		if self._mode == ListeningMode.SINGLE_QUESTION:
			self._aggregator.handle(event)
			return

		if isinstance(event, RecognitionErrorEvent):
			self._dispatch(RecognitionFailed(RecognitionFailure(event.message or None)))
		elif text and any(contains_phrase(text.lower(), p) for p in self._config.activation_phrases):
			log("session.activation_heard", {"text": text})
			self._dispatch(ActivationHeard(text))

	# Event loop

	def _dispatch(self, event: SessionEvent) -> None:
		self._queue.append(event)
		if self._processing:
			return
		self._processing = True
		try:
			while self._queue:
				self._step(self._queue.popleft())
		finally:
			self._processing = False

	def _step(self, event: SessionEvent) -> None:
		previous = self._state
		result = transition(self._state, self._mode, event, self._config)
		if result.state == previous and result.mode == self._mode and not result.commands:
			log("session.event_ignored", {"event": type(event).__name__, "state": previous.value})
			return

		if previous == SessionState.IDLE and result.state != SessionState.IDLE:
			self._generation += 1
		if isinstance(event, StopRequested):
			self._generation += 1

		self._state = result.state
		self._mode = result.mode
		if previous != result.state:
			log("session.state", {"from": previous.value, "to": result.state.value, "event": type(event).__name__, "mode": result.mode.value})
			self._publish("SessionStateChanged", SessionStateChanged(previous=previous.value, current=result.state.value, mode=result.mode.value))

		for command in result.commands:
			self._execute(command)

		if (
			self._continuous
			and self._state == SessionState.IDLE
			and isinstance(event, _RESUMES_CONTINUOUS)
			and not self._policy.recovering
			and getattr(event, "capable", True)
		):
			self._queue.append(StartRequested(ListeningMode.ACTIVATION))

	# Command execution

	def _execute(self, command: Command) -> None:
		handler = getattr(self, f"_do_{type(command).__name__}")
		handler(command)

	def _do_RequestOutputRelease(self, command: RequestOutputRelease) -> None:
		self._audio.request_release(command.reason)

	def _do_ConfirmCaptureOwnership(self, command: ConfirmCaptureOwnership) -> None:
		self._audio.confirm_acquire()

	def _do_PrimeRecognizer(self, command: PrimeRecognizer) -> None:
		try:
			capable = self._recognizer.prime_session()
		except Exception as e:
			log("session.prime_error", {"error": str(e)}, level="error")
			self._queue.append(CaptureFailed(RequestCreationFailure(str(e))))
			return
		if not capable:
			self._queue.append(CaptureFailed(CapabilityUnavailable("recognizer could not be primed")))
			return
		duration = self._cue.play() if command.play_cue else 0.0
		self._queue.append(RecognizerPrimed(duration))

	def _do_BeginCapture(self, command: BeginCapture) -> None:
		self._audio.require_capture()
		self._capture_id += 1
		capture_id = self._capture_id
		self._aggregator.reset()

		def on_event(event: BaseEvent) -> None:
			self._scheduler.call_soon_threadsafe(self._on_capture_event, capture_id, event)

		try:
			self._recognizer.begin_capture(on_event)
		except Exception as e:
			log("session.capture_error", {"error": str(e)}, level="error")
			self._queue.append(CaptureFailed(RequestCreationFailure(str(e))))

	def _do_EndCapture(self, command: EndCapture) -> None:
		self._aggregator.cancel()
		self._capture_id += 1
		try:
			self._recognizer.end_capture()
		except Exception as e:
			log("session.end_capture_error", {"error": str(e)}, level="error")

	def _do_StartTimer(self, command: StartTimer) -> None:
		self._cancel_timer(command.kind)
		self._timers[command.kind] = self._scheduler.call_later(command.delay, self._on_timer, command.kind, self._generation)

	def _do_CancelTimer(self, command: CancelTimer) -> None:
		self._cancel_timer(command.kind)

	def _do_CancelAllTimers(self, command: CancelAllTimers) -> None:
		for kind in list(self._timers):
			self._cancel_timer(kind)

	def _do_AnswerQuestion(self, command: AnswerQuestion) -> None:
		try:
			text = self._answer(command.text)
		except Exception as e:
			log("session.answer_error", {"error": str(e)}, level="error")
			self._do_Apologize(Apologize(RecognitionFailure(str(e))))
			return
		self._queue.append(AnswerReady(text))

	def _do_Apologize(self, command: Apologize) -> None:
		error = command.error
		self.last_error = error
		self._report(error)
		self._queue.append(AnswerReady(ERROR_MESSAGES.get(error.code, error.message), error=True))

	def _do_Speak(self, command: Speak) -> None:
		self._output.speak(command.text)

	def _do_BeginOutputReturn(self, command: BeginOutputReturn) -> None:
		self._audio.begin_return()

	def _do_CompleteOutputReturn(self, command: CompleteOutputReturn) -> None:
		self._audio.complete_return()

	def _do_ForceOutputReturn(self, command: ForceOutputReturn) -> None:
		self._audio.force_return()

	def _do_RecordStartFailure(self, command: RecordStartFailure) -> None:
		self.last_error = command.error
		self._report(command.error)
		decision = self._policy.record_failure(command.error)
		self._queue.append(StartFailureRecorded(command.error, decision))

	def _do_ScheduleRetry(self, command: ScheduleRetry) -> None:
		self._policy.schedule_retry(lambda: self._dispatch(RetryElapsed()))

	def _do_BeginRecovery(self, command: BeginRecovery) -> None:
		self._policy.begin_recovery(self._recheck, lambda capable: self._dispatch(RecoveryFinished(capable)))

	def _do_CancelRetry(self, command: CancelRetry) -> None:
		self._policy.cancel()

	def _do_DisableInteraction(self, command: DisableInteraction) -> None:
		self.last_error = command.error
		self._continuous = False
		if self._on_disabled is not None:
			self._on_disabled(command.error)

	# Timers

	def _on_timer(self, kind: TimerKind, generation: int) -> None:
		self._timers.pop(kind, None)
		if generation != self._generation:
			log("session.stale_timer", {"kind": kind.value})
			return
		self._dispatch(_TIMER_EVENTS[kind]())

	def _cancel_timer(self, kind: TimerKind) -> None:
		handle = self._timers.pop(kind, None)
		if handle is not None:
			handle.cancel()

	def _report(self, error: VoiceQueryError) -> None:
		if error is self._last_reported:
			return
		self._last_reported = error
		log("session.error", {"code": error.code, "message": error.message, "state": self._state.value}, level="warn")
		self._publish("SessionError", ErrorEvent(code=error.code, message=error.message, context={"mode": self._mode.value}))

	def _publish(self, topic: str, payload: object) -> None:
		if self._bus is not None:
			self._bus.publish_nowait(topic, payload)
