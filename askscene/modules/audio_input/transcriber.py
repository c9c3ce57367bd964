from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
import torch
import whisper


@dataclass
class WhisperConfig:
	model_size: str = "base"  # tiny, base, small, medium, large. Short questions do not need more than base
	device: Optional[str] = None  # "cuda", "mps" or "cpu"; auto if None
	language: Optional[str] = "en"
	temperature: Union[float, Tuple[float, ...]] = 0.0  # deterministic, fastest
	beam_size: int = 3
	best_of: int = 3
	condition_on_previous_text: bool = False  # each capture is a fresh question
	initial_prompt: Optional[str] = "A short spoken question about the street scene in front of the speaker."
	no_speech_threshold: float = 0.6
	compression_ratio_threshold: Optional[float] = 2.4
	logprob_threshold: Optional[float] = -1.0


class WhisperTranscriber:
	"""Local Whisper model. Runs entirely on this machine, nothing leaves the device."""

	def __init__(self, config: Optional[WhisperConfig] = None) -> None:
		self.config = config or WhisperConfig()
		self.device = self.config.device or self._get_optimal_device()
		self.model = whisper.load_model(self.config.model_size, device=self.device)

	def _get_optimal_device(self) -> str:
		"""CUDA > MPS > CPU."""
		if torch.cuda.is_available():
			return "cuda"
		if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
			return "mps"
		return "cpu"

	def _options(self) -> Dict[str, Any]:
		options: Dict[str, Any] = {
			"fp16": self.device in ("cuda", "mps"),
			"language": self.config.language,
			"temperature": self.config.temperature,
			"beam_size": self.config.beam_size,
			"best_of": self.config.best_of,
			"condition_on_previous_text": self.config.condition_on_previous_text,
			"no_speech_threshold": self.config.no_speech_threshold,
		}
		if self.config.initial_prompt:
			options["initial_prompt"] = self.config.initial_prompt
		if self.config.compression_ratio_threshold is not None:
			options["compression_ratio_threshold"] = self.config.compression_ratio_threshold
		if self.config.logprob_threshold is not None:
			options["logprob_threshold"] = self.config.logprob_threshold
		return options

	def transcribe_audio_array(self, audio_data: np.ndarray) -> str:
		"""Transcribe mono 16 kHz audio straight from memory."""
		if audio_data.ndim == 2:
			audio_data = audio_data.mean(axis=1)
		if audio_data.dtype != np.float32:
			audio_data = audio_data.astype(np.float32)
		result = self.model.transcribe(audio_data, **self._options())
		return (result or {}).get("text", "").strip()
