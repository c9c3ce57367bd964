import pytest

from askscene.config import ERROR_MESSAGES, RECOVERY_MESSAGE, EngineConfig, TimingConfig
from askscene.infrastructure.audio_resource import AudioPhase
from askscene.infrastructure.errors import SessionBusy
from askscene.infrastructure.question_fsm import ListeningMode, QuestionSession, SessionState, TimerKind
from askscene.infrastructure.schemas import NO_SPEECH, FinalTranscript, PartialTranscript, RecognitionErrorEvent

CAR_AHEAD = [{"id": 1, "label": "car", "score": 0.9, "bbox": [0.45, 0.4, 0.1, 0.2], "distance": 1.5}]


def say(recognizer, scheduler, event):
	recognizer.emit(event)
	scheduler.run_pending()


def test_happy_path_end_to_end(controller, scheduler, recognizer, output, cue, listen):
	controller.update_important_objects(CAR_AHEAD)
	listen()
	assert controller.is_listening
	assert controller.is_waiting_for_question
	assert cue.plays == 1
	assert recognizer.capturing
	assert controller.session.audio.phase == AudioPhase.CAPTURE

	say(recognizer, scheduler, FinalTranscript(text="is there a car"))
	assert controller.state == SessionState.RESPONDING
	assert output.spoken == ["Yes, I can see a car in front of you."]
	assert not recognizer.capturing
	assert controller.last_recognized_text == "is there a car"

	scheduler.advance(0.9)
	assert controller.state == SessionState.RESPONDING
	scheduler.advance(0.1)
	assert controller.state == SessionState.IDLE
	assert output.calls == [
		("interrupt", "user question"),
		("speak", "Yes, I can see a car in front of you."),
		("resume",),
	]
	assert scheduler.pending() == []


def test_capture_waits_for_settle_and_prime(controller, scheduler, recognizer):
	assert controller.start_single_question()
	assert controller.state == SessionState.INTERRUPTING_OUTPUT
	scheduler.advance(0.49)
	assert recognizer.prime_calls == 0
	scheduler.advance(0.01)
	assert controller.state == SessionState.PRIMING
	assert recognizer.prime_calls == 1
	scheduler.advance(0.79)
	assert recognizer.begin_calls == 0
	scheduler.advance(0.01)
	assert controller.state == SessionState.LISTENING
	assert recognizer.begin_calls == 1


def test_long_cue_extends_prime_delay(controller, scheduler, cue):
	cue.duration = 1.0
	assert controller.start_single_question()
	scheduler.advance(0.5 + 1.1)
	assert controller.state == SessionState.PRIMING
	scheduler.advance(0.1)
	assert controller.state == SessionState.LISTENING


def test_quiet_period_finalizes_last_partial(controller, scheduler, recognizer, output, listen):
	controller.update_important_objects(CAR_AHEAD)
	listen()
	say(recognizer, scheduler, PartialTranscript(text="where"))
	scheduler.advance(0.5)
	say(recognizer, scheduler, PartialTranscript(text="where is the car"))
	scheduler.advance(1.4)
	assert controller.is_listening
	scheduler.advance(0.1)
	assert controller.state == SessionState.RESPONDING
	assert output.spoken == ["The car is in front of you, 1.5 meters away."]


def test_answer_reads_feed_at_finalization(controller, scheduler, recognizer, output, listen):
	listen()
	controller.update_important_objects(CAR_AHEAD)
	say(recognizer, scheduler, FinalTranscript(text="how many cars"))
	assert output.spoken == ["I see one car."]


def test_emergency_timeout_fires_once(controller, scheduler, recognizer, output, listen):
	listen()
	scheduler.advance(29.1)
	assert controller.is_listening
	scheduler.advance(0.1)
	assert controller.state == SessionState.RESPONDING
	assert not recognizer.capturing
	assert output.spoken == [ERROR_MESSAGES["EmergencyTimeout"]]
	assert controller.session.last_error.code == "EmergencyTimeout"

	scheduler.advance(2.0)
	assert controller.state == SessionState.IDLE
	assert output.resumes == 1
	scheduler.advance(100.0)
	assert output.spoken == [ERROR_MESSAGES["EmergencyTimeout"]]


def test_emergency_timeout_never_fires_after_answer(controller, scheduler, recognizer, output, listen):
	listen()
	say(recognizer, scheduler, FinalTranscript(text="describe the scene"))
	scheduler.advance(60.0)
	assert ERROR_MESSAGES["EmergencyTimeout"] not in output.spoken
	assert controller.state == SessionState.IDLE


def test_no_speech_apologizes_and_returns_output(controller, scheduler, recognizer, output, listen):
	listen()
	say(recognizer, scheduler, RecognitionErrorEvent(kind=NO_SPEECH))
	assert output.spoken == [ERROR_MESSAGES["NoSpeechDetected"]]
	assert controller.state == SessionState.RESPONDING
	scheduler.advance(1.9)
	assert controller.state == SessionState.RESPONDING
	scheduler.advance(0.1)
	assert controller.state == SessionState.IDLE
	assert controller.session.audio.phase == AudioPhase.OUTPUT
	assert output.resumes == 1
	# never retried on its own
	scheduler.advance(30.0)
	assert recognizer.prime_calls == 1


def test_error_after_partial_answers_with_partial(controller, scheduler, recognizer, output, listen):
	listen()
	say(recognizer, scheduler, PartialTranscript(text="how many objects"))
	say(recognizer, scheduler, RecognitionErrorEvent(message="audio glitch"))
	assert output.spoken == ["I don't detect any objects right now."]


@pytest.mark.parametrize("elapsed, state", [
	(0.0, SessionState.INTERRUPTING_OUTPUT),
	(0.5, SessionState.PRIMING),
	(1.3, SessionState.LISTENING),
])
def test_stop_from_any_state(controller, scheduler, recognizer, output, elapsed, state):
	assert controller.start_single_question()
	scheduler.advance(elapsed)
	assert controller.state == state
	controller.stop()
	assert controller.state == SessionState.IDLE
	assert scheduler.pending() == []
	assert controller.session.active_timers() == []
	assert not recognizer.capturing
	assert recognizer.end_calls >= 1
	assert controller.session.audio.phase == AudioPhase.OUTPUT
	assert output.resumes == 1
	scheduler.advance(60.0)
	assert controller.state == SessionState.IDLE
	assert output.spoken == []


def test_stop_while_responding(controller, scheduler, recognizer, output, listen):
	listen()
	say(recognizer, scheduler, FinalTranscript(text="how many objects"))
	assert controller.state == SessionState.RESPONDING
	controller.stop()
	assert controller.state == SessionState.IDLE
	assert output.resumes == 1
	assert scheduler.pending() == []


def test_stop_when_idle_is_harmless(controller, output):
	controller.stop()
	assert controller.state == SessionState.IDLE
	assert output.calls == []


def test_events_after_stop_are_dropped(controller, scheduler, recognizer, output, listen):
	listen()
	controller.stop()
	say(recognizer, scheduler, FinalTranscript(text="is there a car"))
	assert output.spoken == []
	assert controller.state == SessionState.IDLE


def test_events_from_previous_capture_are_dropped(controller, scheduler, recognizer, output, listen):
	listen()
	stale = recognizer._on_event
	controller.stop()
	listen()
	stale(FinalTranscript(text="where is the bus"))
	scheduler.run_pending()
	assert controller.is_listening
	assert output.spoken == []


def test_start_while_busy(controller, scheduler, listen):
	listen()
	assert not controller.start_single_question()
	assert controller.is_listening
	with pytest.raises(SessionBusy):
		controller.session.start()


def test_text_resets_error_counter(controller, scheduler, recognizer, listen):
	recognizer.prime_error = RuntimeError("audio device busy")
	for _ in range(2):
		assert controller.start_single_question()
		scheduler.advance(0.5)
		scheduler.advance(2.0)
	assert controller.session.policy.consecutive_errors == 2

	recognizer.prime_error = None
	listen()
	say(recognizer, scheduler, PartialTranscript(text="is"))
	assert controller.session.policy.consecutive_errors == 0


def test_single_question_start_failure_apologizes(controller, scheduler, recognizer, output):
	recognizer.prime_error = RuntimeError("audio device busy")
	assert controller.start_single_question()
	scheduler.advance(0.5)
	assert controller.state == SessionState.RESPONDING
	assert output.spoken == [ERROR_MESSAGES["RequestCreationFailure"]]
	scheduler.advance(2.0)
	assert controller.state == SessionState.IDLE
	assert output.resumes == 1
	scheduler.advance(30.0)
	assert recognizer.prime_calls == 1


def test_three_start_failures_enter_recovery(controller, scheduler, recognizer, output):
	recognizer.prime_error = RuntimeError("audio device busy")
	for _ in range(2):
		assert controller.start_single_question()
		scheduler.advance(0.5)
		scheduler.advance(2.0)
		assert controller.state == SessionState.IDLE

	assert controller.start_single_question()
	scheduler.advance(0.5)
	assert controller.state == SessionState.RECOVERING
	assert output.spoken[-1] == RECOVERY_MESSAGE
	assert controller.session.audio.phase == AudioPhase.OUTPUT
	assert not controller.is_ready_for_question()

	assert not controller.start_single_question()
	with pytest.raises(SessionBusy):
		controller.session.start()

	recognizer.prime_error = None
	scheduler.advance(5.9)
	assert controller.state == SessionState.RECOVERING
	scheduler.advance(0.1)
	assert controller.state == SessionState.IDLE
	assert controller.session.policy.consecutive_errors == 0
	assert controller.is_ready_for_question()
	assert controller.start_single_question()


def test_recovery_without_capability_disables(controller, scheduler, recognizer, output):
	recognizer.prime_error = RuntimeError("audio device busy")
	for _ in range(3):
		controller.start_single_question()
		scheduler.advance(0.5)
		scheduler.advance(2.0)
	assert controller.state == SessionState.RECOVERING
	recognizer.available = False
	scheduler.advance(6.0)
	assert controller.state == SessionState.IDLE
	assert not controller.interaction_enabled
	assert output.spoken[-1] == ERROR_MESSAGES["CapabilityUnavailable"]

	assert not controller.start_single_question()
	assert output.spoken[-1] == "Voice interaction is not available."


def test_unprimable_recognizer_disables_interaction(controller, scheduler, recognizer, output):
	recognizer.prime_ok = False
	assert controller.start_single_question()
	scheduler.advance(0.5)
	assert not controller.interaction_enabled
	assert output.spoken == [ERROR_MESSAGES["CapabilityUnavailable"]]
	scheduler.advance(2.0)
	assert controller.state == SessionState.IDLE
	assert output.resumes == 1
	assert controller.session.policy.consecutive_errors == 0


def test_begin_capture_failure_returns_output(controller, scheduler, recognizer, output, listen):
	recognizer.begin_error = RuntimeError("stream refused")
	listen()
	assert controller.state == SessionState.RESPONDING
	assert output.spoken == [ERROR_MESSAGES["RequestCreationFailure"]]
	scheduler.advance(2.0)
	assert controller.state == SessionState.IDLE
	assert controller.session.audio.phase == AudioPhase.OUTPUT


def test_answer_errors_are_apologized(scheduler, recognizer, output, cue):
	def broken(text):
		raise KeyError(text)

	session = QuestionSession(scheduler, recognizer, output, cue, answer=broken)
	session.start()
	scheduler.advance(1.3)
	session.handle_recognition_event(FinalTranscript(text="is there a car"))
	assert session.state == SessionState.RESPONDING
	assert output.spoken == [ERROR_MESSAGES["RecognitionFailure"]]
	scheduler.advance(2.0)
	assert session.state == SessionState.IDLE


# Continuous listening

def open_activation(controller, scheduler):
	assert controller.start_continuous_listening()
	scheduler.advance(0.5)   # settle
	scheduler.advance(0.5)   # activation restart delay


def test_activation_listening_has_no_cue(controller, scheduler, recognizer, cue):
	open_activation(controller, scheduler)
	assert controller.is_listening
	assert controller.is_continuous
	assert not controller.is_waiting_for_question
	assert cue.plays == 0
	assert TimerKind.EMERGENCY not in controller.session.active_timers()
	assert TimerKind.ACTIVATION_WINDOW in controller.session.active_timers()


def test_activation_phrase_starts_a_question(controller, scheduler, recognizer, output, cue):
	controller.update_important_objects(CAR_AHEAD)
	open_activation(controller, scheduler)
	say(recognizer, scheduler, PartialTranscript(text="hey there"))
	assert controller.state == SessionState.PRIMING
	assert controller.session.mode == ListeningMode.SINGLE_QUESTION
	assert cue.plays == 1

	scheduler.advance(0.8)
	assert controller.is_waiting_for_question
	say(recognizer, scheduler, FinalTranscript(text="is there a car"))
	assert output.spoken == ["Yes, I can see a car in front of you."]

	scheduler.advance(1.0)
	# back to waiting for the next activation phrase
	assert controller.state == SessionState.INTERRUPTING_OUTPUT
	assert controller.session.mode == ListeningMode.ACTIVATION
	assert output.resumes == 1


def test_activation_phrase_needs_whole_words(controller, scheduler, recognizer, cue):
	open_activation(controller, scheduler)
	say(recognizer, scheduler, PartialTranscript(text="they listened"))
	assert controller.session.mode == ListeningMode.ACTIVATION
	assert controller.is_listening
	assert cue.plays == 0


def test_activation_window_restarts_capture(controller, scheduler, recognizer):
	open_activation(controller, scheduler)
	assert recognizer.begin_calls == 1
	scheduler.advance(2.0)
	assert controller.state == SessionState.PRIMING
	assert recognizer.end_calls == 1
	scheduler.advance(0.5)
	assert controller.is_listening
	assert recognizer.begin_calls == 2


def test_single_question_interrupts_activation_listening(controller, scheduler, recognizer, cue):
	open_activation(controller, scheduler)
	assert controller.start_single_question()
	assert not controller.is_continuous
	assert controller.state == SessionState.INTERRUPTING_OUTPUT
	scheduler.advance(1.3)
	assert controller.is_waiting_for_question
	assert cue.plays == 1


def test_toggle_listening(controller, scheduler, output):
	assert controller.toggle_listening()
	scheduler.advance(1.0)
	assert controller.is_listening
	assert not controller.toggle_listening()
	assert controller.state == SessionState.IDLE
	assert output.resumes == 1


def test_activation_start_failures_retry_then_recover(controller, scheduler, recognizer, output):
	recognizer.prime_error = RuntimeError("audio device busy")
	assert controller.start_continuous_listening()
	scheduler.advance(0.5)
	assert controller.state == SessionState.IDLE
	assert controller.session.policy.consecutive_errors == 1
	assert output.spoken == []

	scheduler.advance(2.0)   # retry delay
	assert recognizer.prime_calls == 1
	scheduler.advance(0.5)   # settle
	assert recognizer.prime_calls == 2
	assert controller.session.policy.consecutive_errors == 2

	scheduler.advance(2.5)
	assert controller.state == SessionState.RECOVERING
	assert output.spoken == [RECOVERY_MESSAGE]

	recognizer.prime_error = None
	scheduler.advance(6.0)
	# recovered, continuous listening picks up again
	assert controller.state == SessionState.INTERRUPTING_OUTPUT
	assert controller.session.mode == ListeningMode.ACTIVATION
	scheduler.advance(1.0)
	assert controller.is_listening


def test_stop_cancels_pending_retry(controller, scheduler, recognizer):
	recognizer.prime_error = RuntimeError("audio device busy")
	controller.start_continuous_listening()
	scheduler.advance(0.5)
	controller.stop_continuous_listening()
	assert not controller.is_continuous
	scheduler.advance(10.0)
	assert recognizer.prime_calls == 1
	assert controller.state == SessionState.IDLE


def test_session_config_is_respected(scheduler, recognizer, output, cue):
	config = EngineConfig(timing=TimingConfig(settle_delay=0.1, prime_delay_floor=0.2, cue_tail=0.0))
	session = QuestionSession(scheduler, recognizer, output, cue, answer=str.upper, config=config)
	session.start()
	scheduler.advance(0.1)
	scheduler.advance(0.3)
	assert session.state == SessionState.LISTENING
	session.handle_recognition_event(FinalTranscript(text="hello"))
	assert output.spoken == ["HELLO"]
