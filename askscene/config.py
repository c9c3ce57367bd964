"""
Configuration for the askscene voice-query engine.

Module-level constants are the defaults. EngineConfig bundles them into an
explicit value object that is handed to the analyzer, the response generator
and the question session, so thresholds can be varied per instance (tests,
field tuning) without touching globals. A config file (.yaml/.yml/.json) and
ASKSCENE_* environment variables override the defaults.
"""
from __future__ import annotations
import json
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from askscene.infrastructure.errors import ConfigError

# Scene geometry (normalised frame width)
ZONE_LEFT_MAX = 0.3
ZONE_RIGHT_MIN = 0.7

# Scene scoring
CRITICAL_SCORE = 0.7            # score above which an object is critical
NEAR_PLAN_MAX_DISTANCE = 3.0    # metres, below = near plan
FAR_PLAN_MIN_DISTANCE = 8.0     # metres, above = far plan
CLOSE_VEHICLE_DISTANCE = 5.0    # metres, crossing advisor
MOVING_VEHICLE_SCORE = 0.8      # score above which a vehicle is treated as moving

# Session timing (seconds)
SETTLE_DELAY = 0.5              # output interrupt -> capture ownership
PRIME_DELAY_FLOOR = 0.8         # cue start -> capture start, minimum
CUE_TAIL = 0.2                  # silence kept after the cue before capture
QUIET_PERIOD = 1.5              # partial transcript quiet window
EMERGENCY_TIMEOUT = 30.0
RESUME_DELAY = 1.0              # answer spoken -> output resumed
ERROR_RESUME_DELAY = 2.0        # apology spoken -> output resumed
ACTIVATION_WINDOW = 2.0         # continuous mode capture restart period
ACTIVATION_RESTART_DELAY = 0.5

# Retry / recovery
MAX_RETRY_ATTEMPTS = 3
RETRY_DELAY = 2.0
RECOVERY_MULTIPLIER = 3

INTERRUPT_REASON = "user question"
ACTIVATION_PHRASES = ("hey", "listen", "tell me", "ok assistant")

# Spoken messages
UNAVAILABLE_MESSAGE = "Voice interaction is not available."
RECOVERY_MESSAGE = "Voice recognition is having trouble. Please try again in a few seconds."
ERROR_MESSAGES = {
	"CapabilityUnavailable": "Voice interaction is not available on this device.",
	"PermissionDenied": "Microphone or speech permission was denied.",
	"NoSpeechDetected": "I didn't hear anything.",
	"RecognitionFailure": "Speech recognition error.",
	"EmergencyTimeout": "Emergency timeout, the question was cancelled.",
	"RequestCreationFailure": "Speech recognition could not start.",
}

ENV_PREFIX = "ASKSCENE_"


@dataclass(frozen=True)
class SceneThresholds:
	zone_left_max: float = ZONE_LEFT_MAX
	zone_right_min: float = ZONE_RIGHT_MIN
	critical_score: float = CRITICAL_SCORE
	near_plan_max_distance: float = NEAR_PLAN_MAX_DISTANCE
	far_plan_min_distance: float = FAR_PLAN_MIN_DISTANCE
	close_vehicle_distance: float = CLOSE_VEHICLE_DISTANCE
	moving_vehicle_score: float = MOVING_VEHICLE_SCORE

	def validate(self) -> None:
		if not 0.0 <= self.zone_left_max < self.zone_right_min <= 1.0:
			raise ConfigError("zone thresholds must satisfy 0 <= zone_left_max < zone_right_min <= 1")
		for name in ("critical_score", "moving_vehicle_score"):
			value = getattr(self, name)
			if not 0.0 <= value <= 1.0:
				raise ConfigError(f"{name} must be within [0, 1], got {value}")
		if not 0.0 < self.near_plan_max_distance <= self.far_plan_min_distance:
			raise ConfigError("plan distances must satisfy 0 < near_plan_max_distance <= far_plan_min_distance")
		if self.close_vehicle_distance <= 0:
			raise ConfigError("close_vehicle_distance must be positive")


@dataclass(frozen=True)
class TimingConfig:
	settle_delay: float = SETTLE_DELAY
	prime_delay_floor: float = PRIME_DELAY_FLOOR
	cue_tail: float = CUE_TAIL
	quiet_period: float = QUIET_PERIOD
	emergency_timeout: float = EMERGENCY_TIMEOUT
	resume_delay: float = RESUME_DELAY
	error_resume_delay: float = ERROR_RESUME_DELAY
	activation_window: float = ACTIVATION_WINDOW
	activation_restart_delay: float = ACTIVATION_RESTART_DELAY
	max_retry_attempts: int = MAX_RETRY_ATTEMPTS
	retry_delay: float = RETRY_DELAY
	recovery_multiplier: int = RECOVERY_MULTIPLIER

	def validate(self) -> None:
		for f in fields(self):
			value = getattr(self, f.name)
			if value < 0:
				raise ConfigError(f"{f.name} must not be negative, got {value}")
		if self.max_retry_attempts < 1:
			raise ConfigError("max_retry_attempts must be at least 1")
		if self.emergency_timeout <= 0 or self.quiet_period <= 0:
			raise ConfigError("emergency_timeout and quiet_period must be positive")

	def prime_delay(self, cue_duration: float) -> float:
		return max(self.prime_delay_floor, cue_duration + self.cue_tail)

	@property
	def recovery_delay(self) -> float:
		return self.retry_delay * self.recovery_multiplier


@dataclass(frozen=True)
class EngineConfig:
	scene: SceneThresholds = field(default_factory=SceneThresholds)
	timing: TimingConfig = field(default_factory=TimingConfig)
	activation_phrases: Tuple[str, ...] = ACTIVATION_PHRASES
	interrupt_reason: str = INTERRUPT_REASON

	def validate(self) -> "EngineConfig":
		self.scene.validate()
		self.timing.validate()
		if not self.activation_phrases:
			raise ConfigError("activation_phrases must not be empty")
		return self


def _section(cls, data: Mapping[str, Any], name: str):
	known = {f.name: f for f in fields(cls)}
	kwargs: Dict[str, Any] = {}
	for key, value in (data or {}).items():
		if key not in known:
			raise ConfigError(f"Unknown {name} setting: {key}")
		kwargs[key] = int(value) if known[key].type == "int" else float(value)
	return cls(**kwargs)


def config_from_dict(data: Mapping[str, Any]) -> EngineConfig:
	if not isinstance(data, Mapping):
		raise ConfigError("Invalid config: top level must be a mapping")
	unknown = set(data) - {"scene", "timing", "activation_phrases", "interrupt_reason"}
	if unknown:
		raise ConfigError(f"Unknown config sections: {sorted(unknown)}")
	config = EngineConfig(
		scene=_section(SceneThresholds, data.get("scene", {}), "scene"),
		timing=_section(TimingConfig, data.get("timing", {}), "timing"),
	)
	if "activation_phrases" in data:
		phrases = data["activation_phrases"]
		if not isinstance(phrases, list) or not all(isinstance(p, str) for p in phrases):
			raise ConfigError("activation_phrases must be a list of strings")
		config = replace(config, activation_phrases=tuple(p.lower().strip() for p in phrases))
	if "interrupt_reason" in data:
		config = replace(config, interrupt_reason=str(data["interrupt_reason"]))
	return config


def load_from_file(path: str) -> EngineConfig:
	if path.endswith((".yaml", ".yml")):
		with open(path, "r", encoding="utf-8") as f:
			data = yaml.safe_load(f) or {}
	elif path.endswith(".json"):
		with open(path, "r", encoding="utf-8") as f:
			data = json.load(f)
	else:
		raise ConfigError("Unsupported config format; use .yaml/.yml or .json")
	return config_from_dict(data)


def apply_env_overrides(config: EngineConfig, env: Optional[Mapping[str, str]] = None) -> EngineConfig:
	"""ASKSCENE_QUIET_PERIOD=2.0 overrides timing.quiet_period, ASKSCENE_CRITICAL_SCORE the scene one, etc."""
	env = os.environ if env is None else env
	scene_updates: Dict[str, Any] = {}
	timing_updates: Dict[str, Any] = {}
	for target, updates in ((config.scene, scene_updates), (config.timing, timing_updates)):
		for f in fields(target):
			raw = env.get(ENV_PREFIX + f.name.upper())
			if raw is None:
				continue
			try:
				updates[f.name] = int(raw) if f.type == "int" else float(raw)
			except ValueError as e:
				raise ConfigError(f"{ENV_PREFIX}{f.name.upper()} is not a number: {raw!r}") from e
	return replace(
		config,
		scene=replace(config.scene, **scene_updates),
		timing=replace(config.timing, **timing_updates),
	)


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> EngineConfig:
	config = load_from_file(path) if path else EngineConfig()
	return apply_env_overrides(config, env).validate()
