"""
Output/capture handoff for the single shared audio channel.

The phases go strictly forward:

    OUTPUT --request_release--> RELEASING --confirm_acquire--> CAPTURE
    CAPTURE --begin_return--> RETURNING --complete_return--> OUTPUT

force_return() jumps back to OUTPUT from anywhere and resumes speech if the
output had been interrupted. Anything else out of order raises
AudioHandoffError.
"""
from __future__ import annotations
from enum import Enum
from typing import TYPE_CHECKING, Optional

from askscene.infrastructure.errors import AudioHandoffError
from askscene.infrastructure.observability import log

if TYPE_CHECKING:
	from askscene.adapters.base import SpeechOutput


class AudioPhase(str, Enum):
	OUTPUT = "output"
	RELEASING = "releasing"
	CAPTURE = "capture"
	RETURNING = "returning"


class AudioResource:
	def __init__(self, output: "SpeechOutput") -> None:
		self._output = output
		self._phase = AudioPhase.OUTPUT
		self._reason: Optional[str] = None

	@property
	def phase(self) -> AudioPhase:
		return self._phase

	@property
	def capture_owned(self) -> bool:
		return self._phase == AudioPhase.CAPTURE

	@property
	def output_taken(self) -> bool:
		return self._phase != AudioPhase.OUTPUT

	def _move(self, expected: AudioPhase, target: AudioPhase) -> None:
		if self._phase != expected:
			raise AudioHandoffError(f"cannot go {self._phase.value} -> {target.value}, expected {expected.value}")
		log("audio.phase", {"from": self._phase.value, "to": target.value})
		self._phase = target

	def request_release(self, reason: str) -> None:
		self._move(AudioPhase.OUTPUT, AudioPhase.RELEASING)
		self._reason = reason
		self._output.interrupt_and_stop(reason)

	def confirm_acquire(self) -> None:
		self._move(AudioPhase.RELEASING, AudioPhase.CAPTURE)

	def require_capture(self) -> None:
		if self._phase != AudioPhase.CAPTURE:
			raise AudioHandoffError(f"capture not owned (phase {self._phase.value})")

	def begin_return(self) -> None:
		self._move(AudioPhase.CAPTURE, AudioPhase.RETURNING)

	def complete_return(self) -> None:
		self._move(AudioPhase.RETURNING, AudioPhase.OUTPUT)
		self._reason = None
		self._output.resume()

	def force_return(self) -> None:
		if self._phase == AudioPhase.OUTPUT:
			return
		log("audio.force_return", {"from": self._phase.value, "reason": self._reason})
		self._phase = AudioPhase.OUTPUT
		self._reason = None
		self._output.resume()
