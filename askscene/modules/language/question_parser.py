from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from askscene.infrastructure.observability import log
from askscene.modules.language.translations import DEFAULT_DICTIONARY, ObjectTranslationDictionary, contains_phrase


class IntentKind(str, Enum):
	CROSSING = "Crossing"
	COUNT = "Count"
	PRESENCE = "Presence"
	LOCATION = "Location"
	DESCRIPTION = "Description"
	SCENE_OVERVIEW = "SceneOverview"
	SPECIFIC = "Specific"
	UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ParsedQuestion:
	type: IntentKind
	target_object: Optional[str]
	confidence: float
	original_text: str


@dataclass(frozen=True)
class IntentRule:
	kind: IntentKind
	keywords: Tuple[str, ...]
	confidence: float


# Evaluated top to bottom, first keyword hit wins. Crossing stays first so a
# safety question is never masked by a more generic match ("how many cars,
# can I cross?").
INTENT_RULES: Tuple[IntentRule, ...] = (
	IntentRule(IntentKind.CROSSING, (
		"can i cross", "should i cross", "safe to cross", "ok to cross", "okay to cross",
		"cross the street", "cross the road", "crossing the street", "crossing the road",
		"cross now", "cross here", "is it safe",
	), 0.9),
	IntentRule(IntentKind.COUNT, ("how many", "how much", "number of", "count"), 0.8),
	IntentRule(IntentKind.PRESENCE, (
		"is there", "are there", "do you see a", "do you see any", "do you see the",
		"can you see a", "can you see any", "do you detect", "can you detect", "is anyone", "is someone",
	), 0.8),
	IntentRule(IntentKind.LOCATION, ("where", "which side", "position", "located", "how far", "distance"), 0.8),
	IntentRule(IntentKind.DESCRIPTION, (
		"what is in front", "what's in front", "what is ahead", "what's ahead",
		"what do you see", "what can you see",
	), 0.8),
	IntentRule(IntentKind.SCENE_OVERVIEW, (
		"describe", "what is happening", "what's happening", "what's going on", "overview", "surroundings",
	), 0.8),
)

SCENE_WORDS = ("scene", "situation")
FRONT_PHRASE = "in front of me"
TARGET_CONFIDENCE = 0.7
SCENE_CONFIDENCE = 0.9
FRONT_CONFIDENCE = 0.85


def normalize(text: str) -> str:
	cleaned = text.lower().replace("?", "").replace(".", "")
	return " ".join(cleaned.split())


class QuestionParser:
	def __init__(self, dictionary: ObjectTranslationDictionary = DEFAULT_DICTIONARY, rules: Tuple[IntentRule, ...] = INTENT_RULES) -> None:
		self._dictionary = dictionary
		self._rules = rules

	def _classify(self, text: str) -> Tuple[IntentKind, float, Optional[str]]:
		for rule in self._rules:
			for keyword in rule.keywords:
				if contains_phrase(text, keyword):
					return rule.kind, rule.confidence, keyword
		return IntentKind.UNKNOWN, 0.0, None

	def parse(self, text: str) -> ParsedQuestion:
		normalized = normalize(text)
		kind, confidence, keyword = self._classify(normalized)

		target: Optional[str] = None
		match = self._dictionary.find_in_text(normalized)
		if match is not None:
			target = match[0]
			confidence = max(confidence, TARGET_CONFIDENCE)

		if kind is not IntentKind.CROSSING:
			if any(contains_phrase(normalized, w) for w in SCENE_WORDS):
				kind, confidence = IntentKind.SCENE_OVERVIEW, SCENE_CONFIDENCE
			elif contains_phrase(normalized, FRONT_PHRASE) and kind in (IntentKind.UNKNOWN, IntentKind.DESCRIPTION):
				kind, confidence = IntentKind.DESCRIPTION, max(confidence, FRONT_CONFIDENCE)

		parsed = ParsedQuestion(type=kind, target_object=target, confidence=confidence, original_text=text)
		log("parse", {"text": normalized, "intent": kind.value, "keyword": keyword, "target": target, "confidence": confidence})
		return parsed
