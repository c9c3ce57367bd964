from dataclasses import dataclass
from typing import Any, Optional
import threading

import pyttsx3


@dataclass
class TTSConfig:
	rate_factor: float = 0.9  # slightly slower than the system default
	min_rate: int = 120
	volume: float = 0.9
	preferred_voices: tuple = ("zira", "aria", "hazel", "female")


class TextToSpeech:
	"""Blocking system TTS (pyttsx3). A fresh engine per utterance; stop() cuts the current one."""

	def __init__(self, config: Optional[TTSConfig] = None) -> None:
		self.config = config or TTSConfig()
		self._engine: Any = None
		self._lock = threading.Lock()

	def _configure(self, engine: Any) -> None:
		rate = engine.getProperty("rate")
		engine.setProperty("rate", max(self.config.min_rate, int(rate * self.config.rate_factor)))
		engine.setProperty("volume", self.config.volume)
		for voice in engine.getProperty("voices") or []:
			name = (voice.name or "").lower()
			if any(p in name for p in self.config.preferred_voices):
				engine.setProperty("voice", voice.id)
				break

	def speak(self, text: str) -> None:
		engine = pyttsx3.init()
		with self._lock:
			self._engine = engine
		try:
			self._configure(engine)
			engine.say(text)
			engine.runAndWait()
		finally:
			with self._lock:
				self._engine = None
			engine.stop()

	def stop(self) -> None:
		with self._lock:
			engine = self._engine
		if engine is not None:
			engine.stop()

	@property
	def speaking(self) -> bool:
		with self._lock:
			return self._engine is not None
