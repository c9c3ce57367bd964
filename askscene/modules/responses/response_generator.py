from __future__ import annotations
from typing import Callable, Dict, List, Optional

from askscene.config import SceneThresholds
from askscene.infrastructure.observability import log
from askscene.modules.language.question_parser import IntentKind, ParsedQuestion, normalize
from askscene.modules.language.translations import DEFAULT_DICTIONARY, ObjectTranslationDictionary, contains_phrase
from askscene.modules.responses.crossing_advisor import CrossingAdvisor
from askscene.modules.responses.phrasing import format_distance, join_natural, quantity, sentence, with_article, zone_hint
from askscene.modules.scene.models import ObjectObservation, SceneAnalysis, Zone

NO_OBJECTS_PRESENCE = "No, I don't detect any objects right now."
NO_OBJECTS_COUNT = "I don't detect any objects right now."
NO_OBJECTS_TO_LOCATE = "No objects detected to locate."
NOTHING_IN_FRONT = "I don't see anything in particular in front of you."
ONLY_ON_SIDES = "Nothing directly in front of you, but I detect objects on the sides."
CALM_EMPTY_SCENE = "The scene is calm, no objects detected right now."
NOTHING_DETECTED_REPHRASE = "I don't detect any objects right now. Please rephrase your question if needed."
HELP_MESSAGE = (
	"You can ask me whether there is an object, how many there are, where they are, "
	"what is in front of you, whether you can cross, or to describe the scene."
)
HELP_TOKENS = ("help", "what can you do", "how does this work")

ZONE_ORDER = (Zone.LEFT, Zone.CENTER, Zone.RIGHT)
NEAR, MID, FAR = "near", "mid", "far"
PLAN_INTROS = {NEAR: "Close to you", MID: "A little further", FAR: "In the distance"}

CAUTION_AMBIANCE = "Be careful, several important objects are around"
SIGNAGE_AMBIANCE = "Signage present"
TRAFFIC_AMBIANCE = "Dense traffic"
CALM_AMBIANCE = "Calm environment"
CRITICAL_AMBIANCE_MIN = 2
DENSE_TRAFFIC_MIN = 3
CALM_TOTAL_MAX = 3


class ResponseGenerator:
	"""One answer rule per intent, all pure functions of (ParsedQuestion, SceneAnalysis)."""

	def __init__(
		self,
		thresholds: SceneThresholds = SceneThresholds(),
		dictionary: ObjectTranslationDictionary = DEFAULT_DICTIONARY,
		advisor: Optional[CrossingAdvisor] = None,
	) -> None:
		self._thresholds = thresholds
		self._dictionary = dictionary
		self._advisor = advisor or CrossingAdvisor(thresholds)
		self._handlers: Dict[IntentKind, Callable[[ParsedQuestion, SceneAnalysis], str]] = {
			IntentKind.PRESENCE: self.presence,
			IntentKind.COUNT: self.count,
			IntentKind.LOCATION: self.location,
			IntentKind.SPECIFIC: self.location,
			IntentKind.DESCRIPTION: self.description,
			IntentKind.SCENE_OVERVIEW: self.scene_overview,
			IntentKind.CROSSING: self.crossing,
			IntentKind.UNKNOWN: self.unknown,
		}

	def generate(self, question: ParsedQuestion, analysis: SceneAnalysis) -> str:
		response = self._handlers[question.type](question, analysis)
		log("response", {"intent": question.type.value, "target": question.target_object, "response": response})
		return response

	# Helpers

	def _quantities(self, counts: Dict[str, int]) -> List[str]:
		return [quantity(display, count, self._dictionary) for display, count in counts.items()]

	def _plural(self, display: str) -> str:
		return self._dictionary.plural(display)

	@staticmethod
	def _nearest(observations: List[ObjectObservation]) -> ObjectObservation:
		with_distance = [o for o in observations if o.distance is not None]
		if with_distance:
			return min(with_distance, key=lambda o: o.distance)
		return observations[0]

	@staticmethod
	def _zone_of_display(display: str, analysis: SceneAnalysis) -> Optional[Zone]:
		for zone in ZONE_ORDER:
			if display in analysis.zone_membership.get(zone, []):
				return zone
		return None

	# Intents

	def presence(self, question: ParsedQuestion, analysis: SceneAnalysis) -> str:
		if question.target_object is None:
			if analysis.is_empty:
				return NO_OBJECTS_PRESENCE
			return sentence(f"Yes, I can see {join_natural(self._quantities(analysis.counts_by_label))}")

		display = self._dictionary.to_display(question.target_object)
		count = analysis.count(display)
		if count == 0:
			return sentence(f"No, I don't see any {self._plural(display)} right now")
		if count > 1:
			return sentence(f"Yes, I can see {count} {self._plural(display)}")
		zone = self._zone_of_display(display, analysis)
		hint = f" {zone_hint(zone)}" if zone is not None else ""
		return sentence(f"Yes, I can see {with_article(display)}{hint}")

	def count(self, question: ParsedQuestion, analysis: SceneAnalysis) -> str:
		if question.target_object is None:
			total = analysis.total_objects
			if total == 0:
				return NO_OBJECTS_COUNT
			if total == 1:
				return sentence(f"I detect one object: {join_natural(self._quantities(analysis.counts_by_label))}")
			return sentence(f"I detect {total} objects in total: {join_natural(self._quantities(analysis.counts_by_label))}")

		display = self._dictionary.to_display(question.target_object)
		count = analysis.count(display)
		if count == 0:
			return sentence(f"I see no {self._plural(display)}")
		if count == 1:
			return sentence(f"I see one {display}")
		return sentence(f"I see {count} {self._plural(display)}")

	def location(self, question: ParsedQuestion, analysis: SceneAnalysis) -> str:
		if question.target_object is None:
			return self._general_location(analysis)

		display = self._dictionary.to_display(question.target_object)
		observations = analysis.of_label(question.target_object)
		if not observations:
			return sentence(f"I don't see any {self._plural(display)} right now")

		nearest = self._nearest(observations)
		where = zone_hint(nearest.zone)
		if nearest.distance is not None:
			where = f"{where}, {format_distance(nearest.distance)}"
		if len(observations) > 1:
			return sentence(f"I see {len(observations)} {self._plural(display)}. One of them is {where}")
		return sentence(f"The {display} is {where}")

	def _general_location(self, analysis: SceneAnalysis) -> str:
		if analysis.is_empty:
			return NO_OBJECTS_TO_LOCATE
		parts = []
		for zone in ZONE_ORDER:
			members = analysis.zone_membership.get(zone, [])
			if members:
				noun = "object" if len(members) == 1 else "objects"
				parts.append(f"{len(members)} {noun} {zone_hint(zone)}")
		return sentence(join_natural(parts))

	def description(self, question: ParsedQuestion, analysis: SceneAnalysis) -> str:
		if analysis.is_empty:
			return NOTHING_IN_FRONT
		front = analysis.zone_membership.get(Zone.CENTER, [])
		if not front:
			return ONLY_ON_SIDES
		grouped: Dict[str, int] = {}
		for display in front:
			grouped[display] = grouped.get(display, 0) + 1
		return sentence(f"In front of you, I see {join_natural(self._quantities(grouped))}")

	def _plan_of(self, observations: List[ObjectObservation]) -> str:
		distances = [o.distance for o in observations if o.distance is not None]
		if not distances:
			return NEAR if any(o.critical for o in observations) else MID
		nearest = min(distances)
		if nearest < self._thresholds.near_plan_max_distance:
			return NEAR
		if nearest > self._thresholds.far_plan_min_distance:
			return FAR
		return MID

	def scene_plans(self, analysis: SceneAnalysis) -> Dict[str, Dict[str, int]]:
		"""Bucket every distinct label into the near/mid/far plan by its minimum observed distance."""
		by_display: Dict[str, List[ObjectObservation]] = {}
		for obs in analysis.observations:
			by_display.setdefault(obs.display, []).append(obs)
		plans: Dict[str, Dict[str, int]] = {NEAR: {}, MID: {}, FAR: {}}
		for display, observations in by_display.items():
			plans[self._plan_of(observations)][display] = len(observations)
		return plans

	def _ambiance(self, analysis: SceneAnalysis) -> Optional[str]:
		if len(analysis.critical_labels) > CRITICAL_AMBIANCE_MIN:
			return CAUTION_AMBIANCE
		if analysis.navigation_labels:
			return SIGNAGE_AMBIANCE
		if len(analysis.vehicles()) > DENSE_TRAFFIC_MIN:
			return TRAFFIC_AMBIANCE
		if analysis.total_objects < CALM_TOTAL_MAX:
			return CALM_AMBIANCE
		return None

	def scene_overview(self, question: ParsedQuestion, analysis: SceneAnalysis) -> str:
		if analysis.is_empty:
			return CALM_EMPTY_SCENE
		clauses = []
		for plan, counts in self.scene_plans(analysis).items():
			if counts:
				clauses.append(f"{PLAN_INTROS[plan]}: {join_natural(self._quantities(counts))}")
		ambiance = self._ambiance(analysis)
		if ambiance:
			clauses.append(ambiance)
		return ". ".join(clauses) + "."

	def crossing(self, question: ParsedQuestion, analysis: SceneAnalysis) -> str:
		return self._advisor.assess(analysis).message

	def unknown(self, question: ParsedQuestion, analysis: SceneAnalysis) -> str:
		text = normalize(question.original_text)
		if any(contains_phrase(text, token) for token in HELP_TOKENS):
			return HELP_MESSAGE
		if analysis.is_empty:
			return NOTHING_DETECTED_REPHRASE
		most_common = sorted(analysis.counts_by_label.items(), key=lambda kv: kv[1], reverse=True)[:3]
		return sentence(f"I'm not sure I understood. Right now I see {join_natural(self._quantities(dict(most_common)))}")
