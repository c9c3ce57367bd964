from __future__ import annotations
import threading
import time
from typing import Optional

import numpy as np
import sounddevice as sd

from askscene.adapters.base import RecognitionCallback, RecognizerBackend
from askscene.infrastructure.observability import log
from askscene.infrastructure.schemas import (
	NO_SPEECH,
	RECOGNITION_FAILED,
	FinalTranscript,
	PartialTranscript,
	RecognitionErrorEvent,
)
from askscene.modules.audio_input import recorder as mic_recorder
from askscene.modules.audio_input import transcriber as whisper_transcriber


class WhisperRecognizerAdapter(RecognizerBackend):
	"""
	Streams partial transcripts from a local Whisper model.

	While capturing, a worker thread re-transcribes everything recorded so far
	every poll_interval seconds and emits a PartialTranscript whenever the
	text changes. After speech, trailing silence of end_silence seconds emits
	a FinalTranscript. If nothing is heard for silence_window seconds the
	capture reports a no_speech error.
	"""

	def __init__(
		self,
		model_size: str = "base",
		poll_interval: float = 0.7,
		silence_window: float = 5.0,
		end_silence: float = 1.2,
		silence_rms: float = 0.01,
		recorder: Optional[mic_recorder.AudioRecorder] = None,
	) -> None:
		self._whisper_config = whisper_transcriber.WhisperConfig(model_size=model_size)
		self._transcriber: Optional[whisper_transcriber.WhisperTranscriber] = None
		self._recorder = recorder or mic_recorder.AudioRecorder(mic_recorder.RecordingConfig())
		self._poll_interval = poll_interval
		self._silence_window = silence_window
		self._end_silence = end_silence
		self._silence_rms = silence_rms
		self._worker: Optional[threading.Thread] = None
		self._stop = threading.Event()
		self._lock = threading.Lock()

	@property
	def supports_on_device(self) -> bool:
		return True

	def is_available(self) -> bool:
		try:
			device = sd.query_devices(kind="input")
		except Exception as e:
			log("stt.no_input_device", {"error": str(e)}, level="warn")
			return False
		return bool(device) and device.get("max_input_channels", 0) > 0

	def request_permission(self) -> bool:
		cfg = self._recorder.config
		try:
			sd.check_input_settings(samplerate=cfg.sample_rate, channels=cfg.channels, dtype=cfg.dtype)
		except Exception as e:
			log("stt.permission_denied", {"error": str(e)}, level="warn")
			return False
		return True

	def prime_session(self) -> bool:
		if self._transcriber is not None:
			return True
		try:
			self._transcriber = whisper_transcriber.WhisperTranscriber(self._whisper_config)
		except Exception as e:
			log("stt.model_load_failed", {"model": self._whisper_config.model_size, "error": str(e)}, level="error")
			return False
		log("stt.model_loaded", {"model": self._whisper_config.model_size, "device": self._transcriber.device})
		return True

	def begin_capture(self, on_event: RecognitionCallback) -> None:
		if self._transcriber is None:
			raise RuntimeError("prime_session() must succeed before begin_capture()")
		with self._lock:
			if self._worker is not None and self._worker.is_alive():
				raise RuntimeError("Capture already in progress")
			self._stop = threading.Event()
			self._recorder.start()
			self._worker = threading.Thread(target=self._capture_loop, args=(on_event, self._stop), daemon=True)
			self._worker.start()
		log("stt.capture_started")

	def end_capture(self) -> None:
		with self._lock:
			self._stop.set()
			if self._recorder.recording:
				self._recorder.stop()
			self._worker = None
		log("stt.capture_ended")

	def _capture_loop(self, on_event: RecognitionCallback, stop: threading.Event) -> None:
		sample_rate = self._recorder.config.sample_rate
		started = time.time()
		last_text = ""
		last_voice_at: Optional[float] = None
		try:
			while not stop.wait(self._poll_interval):
				audio = self._recorder.snapshot()
				tail = audio[-int(sample_rate * self._poll_interval):]
				now = time.time()
				if mic_recorder.rms(tail) >= self._silence_rms:
					last_voice_at = now

				if last_voice_at is None:
					if now - started >= self._silence_window:
						on_event(RecognitionErrorEvent(kind=NO_SPEECH, message="no speech detected"))
						return
					continue

				if last_text and now - last_voice_at >= self._end_silence:
					on_event(FinalTranscript(text=last_text))
					return

				text = self._transcribe(audio)
				if stop.is_set():
					return
				if text and text != last_text:
					last_text = text
					on_event(PartialTranscript(text=text))
		except Exception as e:
			log("stt.capture_error", {"error": str(e)}, level="error")
			if not stop.is_set():
				on_event(RecognitionErrorEvent(kind=RECOGNITION_FAILED, message=str(e)))

	def _transcribe(self, audio: np.ndarray) -> str:
		assert self._transcriber is not None
		if audio.size == 0:
			return ""
		return self._transcriber.transcribe_audio_array(audio)
