from __future__ import annotations

import numpy as np
import sounddevice as sd

from askscene.adapters.base import CueSound
from askscene.infrastructure.observability import log


def make_tone(frequency: float, duration: float, amplitude: float, sample_rate: int, fade: float = 0.01) -> np.ndarray:
	t = np.arange(int(sample_rate * duration), dtype=np.float32) / sample_rate
	tone = (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float32)
	ramp = min(int(sample_rate * fade), tone.size // 2)
	if ramp:
		envelope = np.linspace(0.0, 1.0, ramp, dtype=np.float32)
		tone[:ramp] *= envelope
		tone[-ramp:] *= envelope[::-1]
	return tone


class BeepCue(CueSound):
	"""Short sine beep telling the user the microphone is about to open."""

	def __init__(self, frequency: float = 880.0, duration: float = 0.3, amplitude: float = 0.5, sample_rate: int = 44100) -> None:
		self.sample_rate = sample_rate
		self.duration = duration
		self._tone = make_tone(frequency, duration, amplitude, sample_rate)

	@property
	def samples(self) -> np.ndarray:
		return self._tone

	def play(self) -> float:
		try:
			sd.play(self._tone, self.sample_rate)
		except Exception as e:
			log("cue.play_failed", {"error": str(e)}, level="warn")
			return 0.0
		return self.duration
