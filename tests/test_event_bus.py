import asyncio
import json
import threading

import pytest

from askscene.controller import VoiceQueryController
from askscene.event_bus import EventBus
from askscene.infrastructure.scheduler import AsyncioScheduler
from askscene.infrastructure.schemas import FinalTranscript, RecognitionErrorEvent, ResponseReady
from askscene.infrastructure.session_log import SessionLog


async def drain():
	for _ in range(10):
		await asyncio.sleep(0)


class Recorder:
	def __init__(self):
		self.events = []

	async def __call__(self, topic, envelope):
		self.events.append((topic, envelope["payload"]))

	def payloads(self, topic):
		return [p for t, p in self.events if t == topic]


@pytest.mark.asyncio
async def test_publish_reaches_every_subscriber():
	bus = EventBus()
	first, second = Recorder(), Recorder()
	await bus.subscribe("QuestionAnswered", first)
	await bus.subscribe("QuestionAnswered", second)
	request_id = await bus.publish("QuestionAnswered", {"answer": "yes"}, request_id="abc")
	assert request_id == "abc"
	assert first.events == second.events == [("QuestionAnswered", {"answer": "yes"})]

	await bus.unsubscribe("QuestionAnswered", first)
	await bus.publish("QuestionAnswered", {"answer": "no"})
	assert len(first.events) == 1
	assert len(second.events) == 2


def test_publish_nowait_without_subscribers_needs_no_loop():
	assert EventBus().publish_nowait("SessionError", object()) is None


@pytest.mark.asyncio
async def test_publish_nowait_schedules_delivery():
	bus = EventBus()
	recorder = Recorder()
	await bus.subscribe("SessionError", recorder)
	task = bus.publish_nowait("SessionError", {"code": "NoSpeechDetected"})
	assert recorder.events == []
	await task
	assert recorder.payloads("SessionError") == [{"code": "NoSpeechDetected"}]


@pytest.mark.asyncio
async def test_publish_nowait_logs_handler_failures(capsys):
	bus = EventBus()

	async def broken(topic, envelope):
		raise ValueError("handler blew up")

	await bus.subscribe("SessionError", broken)
	task = bus.publish_nowait("SessionError", {"code": "RecognitionFailure"})
	assert bus.pending == 1
	await drain()
	assert task.done()
	assert bus.pending == 0
	out = capsys.readouterr().out
	assert "bus.handler_error" in out
	assert "handler blew up" in out


@pytest.mark.asyncio
async def test_session_publishes_lifecycle(scheduler, recognizer, output, cue):
	bus = EventBus()
	recorder = Recorder()
	for topic in ("SessionStateChanged", "QuestionAnswered", "SessionError"):
		await bus.subscribe(topic, recorder)
	controller = VoiceQueryController(scheduler, recognizer, output, cue, bus=bus)

	assert controller.start_single_question()
	scheduler.advance(1.3)
	recognizer.emit(FinalTranscript(text="how many objects"))
	scheduler.run_pending()
	scheduler.advance(1.0)
	await drain()

	states = [p.current for p in recorder.payloads("SessionStateChanged")]
	assert states == ["InterruptingOutput", "Priming", "Listening", "Finalizing", "Responding", "Idle"]
	(answered,) = recorder.payloads("QuestionAnswered")
	assert isinstance(answered, ResponseReady)
	assert answered.intent == "Count"
	assert answered.question == "how many objects"
	assert answered.answer == "I don't detect any objects right now."
	assert recorder.payloads("SessionError") == []


@pytest.mark.asyncio
async def test_session_log_collects_a_run(tmp_path, scheduler, recognizer, output, cue):
	bus = EventBus()
	session_log = SessionLog(str(tmp_path))
	await session_log.attach(bus)
	controller = VoiceQueryController(scheduler, recognizer, output, cue, bus=bus)

	controller.start_single_question()
	scheduler.advance(1.3)
	recognizer.emit(FinalTranscript(text="is there a car"))
	scheduler.run_pending()
	scheduler.advance(1.0)

	controller.start_single_question()
	scheduler.advance(1.3)
	recognizer.emit(RecognitionErrorEvent(kind="no_speech"))
	scheduler.run_pending()
	scheduler.advance(2.0)
	await drain()

	summary = session_log.finalize()
	assert summary.total_questions == 1
	assert summary.questions_by_intent == {"Presence": 1}
	assert summary.total_errors == 1
	assert summary.errors_by_code == {"NoSpeechDetected": 1}
	assert summary.state_changes == 12

	with open(session_log.log_file, encoding="utf-8") as f:
		data = json.load(f)
	assert data["session_info"]["session_id"] == session_log.session_id
	assert data["session_summary"]["total_questions"] == 1
	categories = {e["category"] for e in data["log_entries"]}
	assert categories == {"state", "question", "error"}


@pytest.mark.asyncio
async def test_interaction_disabled_is_published(scheduler, recognizer, output, cue):
	bus = EventBus()
	recorder = Recorder()
	await bus.subscribe("InteractionDisabled", recorder)
	controller = VoiceQueryController(scheduler, recognizer, output, cue, bus=bus)
	recognizer.permission = False
	assert not controller.refresh_capability()
	await drain()
	(event,) = recorder.payloads("InteractionDisabled")
	assert event.code == "PermissionDenied"


@pytest.mark.asyncio
async def test_asyncio_scheduler_runs_timers():
	scheduler = AsyncioScheduler()
	fired = []
	start = scheduler.now()
	scheduler.call_later(0.01, fired.append, "late")
	cancelled = scheduler.call_later(0.01, fired.append, "cancelled")
	cancelled.cancel()
	assert cancelled.cancelled
	await asyncio.sleep(0.05)
	assert fired == ["late"]
	assert scheduler.now() - start >= 0.01


@pytest.mark.asyncio
async def test_asyncio_scheduler_accepts_other_threads():
	scheduler = AsyncioScheduler()
	done = asyncio.Event()
	seen = []

	def from_thread():
		scheduler.call_soon_threadsafe(lambda: (seen.append(threading.current_thread().name), done.set()))

	worker = threading.Thread(target=from_thread, name="audio")
	worker.start()
	worker.join()
	await asyncio.wait_for(done.wait(), timeout=1.0)
	assert seen == [threading.main_thread().name]
