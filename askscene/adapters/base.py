from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Callable

from askscene.infrastructure.schemas import BaseEvent

RecognitionCallback = Callable[[BaseEvent], None]


class RecognizerBackend(ABC):
	"""
	Speech-to-text collaborator.

	begin_capture() hands over a callback that receives PartialTranscript,
	FinalTranscript and RecognitionErrorEvent objects. The callback is safe to
	call from any thread.
	"""

	@abstractmethod
	def is_available(self) -> bool:
		...

	@property
	@abstractmethod
	def supports_on_device(self) -> bool:
		...

	@abstractmethod
	def request_permission(self) -> bool:
		...

	@abstractmethod
	def prime_session(self) -> bool:
		...

	@abstractmethod
	def begin_capture(self, on_event: RecognitionCallback) -> None:
		...

	@abstractmethod
	def end_capture(self) -> None:
		...


class SpeechOutput(ABC):
	@abstractmethod
	def interrupt_and_stop(self, reason: str) -> None:
		...

	@abstractmethod
	def speak(self, text: str) -> None:
		...

	@abstractmethod
	def resume(self) -> None:
		...


class CueSound(ABC):
	@abstractmethod
	def play(self) -> float:
		"""Start the cue and return its duration in seconds."""
