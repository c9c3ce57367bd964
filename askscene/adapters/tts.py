from __future__ import annotations
import threading
import time
from collections import deque
from typing import Deque, Optional

from askscene.adapters.base import SpeechOutput
from askscene.infrastructure.observability import log
from askscene.modules.audio_output.tts_engine import TextToSpeech, TTSConfig

INTERRUPT_COOLDOWN = 1.0


class SpeechOutputAdapter(SpeechOutput):
	"""
	Speech output with two lanes, run by one worker thread.

	Announcements (announce()) queue up and are held while the voice-query
	engine owns the audio channel. Answers (speak()) are played as soon as
	the worker is free, paused or not. interrupt_and_stop() cuts the current
	utterance and pauses announcements until resume().
	"""

	def __init__(self, engine: Optional[TextToSpeech] = None, interrupt_cooldown: float = INTERRUPT_COOLDOWN) -> None:
		self._engine = engine or TextToSpeech(TTSConfig())
		self._cooldown = interrupt_cooldown
		self._answers: Deque[str] = deque()
		self._announcements: Deque[str] = deque()
		self._cond = threading.Condition()
		self._paused = False
		self._closed = False
		self._last_interrupt_at: Optional[float] = None
		self._worker = threading.Thread(target=self._run, daemon=True)
		self._worker.start()

	@property
	def paused(self) -> bool:
		with self._cond:
			return self._paused

	def announce(self, text: str) -> None:
		with self._cond:
			self._announcements.append(text)
			self._cond.notify()

	def speak(self, text: str) -> None:
		with self._cond:
			self._answers.append(text)
			self._cond.notify()

	def interrupt_and_stop(self, reason: str) -> None:
		now = time.time()
		with self._cond:
			recent = self._last_interrupt_at is not None and now - self._last_interrupt_at < self._cooldown
			self._paused = True
			self._last_interrupt_at = now
			self._answers.clear()
		if recent:
			log("tts.interrupt_cooldown", {"reason": reason})
			return
		log("tts.interrupted", {"reason": reason})
		self._engine.stop()

	def resume(self) -> None:
		with self._cond:
			self._paused = False
			self._cond.notify()
		log("tts.resumed", {"pending": len(self._announcements)})

	def close(self) -> None:
		with self._cond:
			self._closed = True
			self._cond.notify()
		self._engine.stop()

	def _next(self) -> Optional[str]:
		with self._cond:
			while not self._closed:
				if self._answers:
					return self._answers.popleft()
				if self._announcements and not self._paused:
					return self._announcements.popleft()
				self._cond.wait()
		return None

	def _run(self) -> None:
		while True:
			text = self._next()
			if text is None:
				return
			try:
				self._engine.speak(text)
			except Exception as e:
				log("tts.error", {"error": str(e)}, level="error")
