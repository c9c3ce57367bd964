from __future__ import annotations
from typing import Optional


class VoiceQueryError(Exception):
	"""Base class for every failure the voice-query engine reports."""

	code: str = "VoiceQueryError"

	def __init__(self, message: Optional[str] = None) -> None:
		super().__init__(message or self.code)
		self.message = message or self.code


class CapabilityUnavailable(VoiceQueryError):
	"""No local (on-device) recognition support. Permanent until an external recheck."""
	code = "CapabilityUnavailable"


class PermissionDenied(VoiceQueryError):
	code = "PermissionDenied"


class SessionBusy(VoiceQueryError):
	"""start() was called while a session is live or the engine is recovering."""
	code = "SessionBusy"


class NoSpeechDetected(VoiceQueryError):
	code = "NoSpeechDetected"


class RecognitionFailure(VoiceQueryError):
	code = "RecognitionFailure"


class EmergencyTimeout(VoiceQueryError):
	code = "EmergencyTimeout"


class RequestCreationFailure(VoiceQueryError):
	code = "RequestCreationFailure"


class AudioHandoffError(RuntimeError):
	"""Raised when the output/capture handoff is driven out of order."""


class ConfigError(ValueError):
	pass


# Errors that switch interaction off instead of feeding the retry policy.
DISABLING_ERRORS = (CapabilityUnavailable, PermissionDenied)
