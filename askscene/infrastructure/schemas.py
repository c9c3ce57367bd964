from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import time


@dataclass
class BaseEvent:
	request_id: str = ""
	ts: float = field(default_factory=lambda: time.time())


# Recognizer -> engine events. Any of these may be produced on the audio thread.

@dataclass
class PartialTranscript(BaseEvent):
	text: str = ""


@dataclass
class FinalTranscript(BaseEvent):
	text: str = ""


NO_SPEECH = "no_speech"
RECOGNITION_FAILED = "failed"


@dataclass
class RecognitionErrorEvent(BaseEvent):
	kind: str = RECOGNITION_FAILED  # no_speech | failed
	message: str = ""


# Engine -> observer events published on the EventBus.

@dataclass
class SessionStateChanged(BaseEvent):
	previous: str = ""
	current: str = ""
	mode: str = ""


@dataclass
class ResponseReady(BaseEvent):
	question: str = ""
	intent: str = ""
	target_object: Optional[str] = None
	confidence: float = 0.0
	answer: str = ""
	latency_ms: float = 0.0


@dataclass
class ErrorEvent(BaseEvent):
	code: str = ""
	message: str = ""
	context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class InteractionDisabled(BaseEvent):
	code: str = ""
	message: str = ""
