"""
Street-crossing advisor.

Two independent scores feed a fixed decision ladder:

* signalization (0-4): traffic light +2, crosswalk +2, traffic signs +1,
  street lighting +1, capped at 4;
* traffic safety (0-10): starts at 10, -3 per vehicle closer than the close
  distance, -2 per vehicle scored above the moving threshold, -1 per vehicle
  beyond the first two, floored at 0.

The branch order and the thresholds below are part of the advisor's contract:
users learn what each answer means, so they must not drift.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict

from askscene.config import SceneThresholds
from askscene.infrastructure.observability import log
from askscene.modules.scene.models import SceneAnalysis

MAX_SIGNALIZATION = 4
MAX_SAFETY = 10

LIGHT_AND_CROSSWALK_SAFE = 7
CROSSWALK_ONLY_SAFE = 8
CROSSWALK_ONLY_WAIT_CLOSE = 2
UNSIGNALED_CAUTION = 5
PARTIAL_SIGNALIZATION_SAFE = 6
LOW_SIGNALIZATION = 1


class CrossingAdvice(str, Enum):
	CROSS_ON_GREEN = "cross_on_green"
	WAIT_VEHICLES_CLOSE = "wait_vehicles_close"
	CHECK_LIGHT = "check_light"
	CROSS_AT_CROSSWALK = "cross_at_crosswalk"
	WAIT_AT_CROSSWALK = "wait_at_crosswalk"
	CHECK_TRAFFIC = "check_traffic"
	LOCATE_CROSSWALK = "locate_crosswalk"
	NOTHING_OBSTRUCTS = "nothing_obstructs"
	EXTREME_CAUTION = "extreme_caution"
	FIND_SAFER_CROSSING = "find_safer_crossing"
	CROSS_WITH_CAUTION = "cross_with_caution"
	SIGNAGE_BUT_DANGEROUS = "signage_but_dangerous"


ADVICE_MESSAGES: Dict[CrossingAdvice, str] = {
	CrossingAdvice.CROSS_ON_GREEN: "There is a traffic light and a crosswalk. Wait for the green light, then cross carefully.",
	CrossingAdvice.WAIT_VEHICLES_CLOSE: "There is a traffic light and a crosswalk, but vehicles are close. Wait before crossing.",
	CrossingAdvice.CHECK_LIGHT: "There is a traffic light and a crosswalk. Check the light before crossing.",
	CrossingAdvice.CROSS_AT_CROSSWALK: "There is a crosswalk and traffic looks clear. You can cross carefully.",
	CrossingAdvice.WAIT_AT_CROSSWALK: "There is a crosswalk, but several vehicles are close. Wait before crossing.",
	CrossingAdvice.CHECK_TRAFFIC: "There is a crosswalk. Check the traffic before crossing.",
	CrossingAdvice.LOCATE_CROSSWALK: "There is a traffic light but no crosswalk. Try to find a crosswalk nearby.",
	CrossingAdvice.NOTHING_OBSTRUCTS: "I see no crossing signage, but nothing seems to obstruct your way.",
	CrossingAdvice.EXTREME_CAUTION: "No crossing signage and vehicles are around. Use extreme caution.",
	CrossingAdvice.FIND_SAFER_CROSSING: "No crossing signage and traffic looks dangerous. Find a safer place to cross.",
	CrossingAdvice.CROSS_WITH_CAUTION: "Some signage is present. You can cross with caution.",
	CrossingAdvice.SIGNAGE_BUT_DANGEROUS: "Some signage is present, but traffic looks dangerous. Find a safer place to cross.",
}


@dataclass(frozen=True)
class CrossingSignals:
	traffic_light: bool = False
	crosswalk: bool = False
	traffic_signs: bool = False
	street_light: bool = False


@dataclass(frozen=True)
class CrossingAssessment:
	signals: CrossingSignals
	signalization: int
	safety: int
	vehicles: int
	close_vehicles: int
	moving_vehicles: int
	advice: CrossingAdvice
	message: str


def signalization_score(signals: CrossingSignals) -> int:
	score = 0
	if signals.traffic_light:
		score += 2
	if signals.crosswalk:
		score += 2
	if signals.traffic_signs:
		score += 1
	if signals.street_light:
		score += 1
	return min(score, MAX_SIGNALIZATION)


def traffic_safety_score(vehicles: int, close_vehicles: int, moving_vehicles: int) -> int:
	score = MAX_SAFETY
	score -= 3 * close_vehicles
	score -= 2 * moving_vehicles
	score -= max(0, vehicles - 2)
	return max(0, score)


def choose_advice(signals: CrossingSignals, signalization: int, safety: int, vehicles: int, close_vehicles: int) -> CrossingAdvice:
	if signals.traffic_light and signals.crosswalk:
		if safety >= LIGHT_AND_CROSSWALK_SAFE:
			return CrossingAdvice.CROSS_ON_GREEN
		if close_vehicles > 0:
			return CrossingAdvice.WAIT_VEHICLES_CLOSE
		return CrossingAdvice.CHECK_LIGHT
	if signals.crosswalk:
		if safety >= CROSSWALK_ONLY_SAFE:
			return CrossingAdvice.CROSS_AT_CROSSWALK
		if close_vehicles > CROSSWALK_ONLY_WAIT_CLOSE:
			return CrossingAdvice.WAIT_AT_CROSSWALK
		return CrossingAdvice.CHECK_TRAFFIC
	if signals.traffic_light:
		return CrossingAdvice.LOCATE_CROSSWALK
	if signalization <= LOW_SIGNALIZATION:
		if vehicles == 0:
			return CrossingAdvice.NOTHING_OBSTRUCTS
		if safety >= UNSIGNALED_CAUTION:
			return CrossingAdvice.EXTREME_CAUTION
		return CrossingAdvice.FIND_SAFER_CROSSING
	if safety >= PARTIAL_SIGNALIZATION_SAFE:
		return CrossingAdvice.CROSS_WITH_CAUTION
	return CrossingAdvice.SIGNAGE_BUT_DANGEROUS


class CrossingAdvisor:
	def __init__(self, thresholds: SceneThresholds = SceneThresholds()) -> None:
		self._thresholds = thresholds

	def assess(self, analysis: SceneAnalysis) -> CrossingAssessment:
		signals = CrossingSignals(
			traffic_light=analysis.has_label("traffic_light"),
			crosswalk=analysis.has_label("crosswalk"),
			traffic_signs=analysis.has_label("traffic_sign"),
			street_light=analysis.has_label("street_light"),
		)
		vehicles = analysis.vehicles()
		close = sum(1 for v in vehicles if v.distance is not None and v.distance < self._thresholds.close_vehicle_distance)
		moving = sum(1 for v in vehicles if v.score > self._thresholds.moving_vehicle_score)

		signalization = signalization_score(signals)
		safety = traffic_safety_score(len(vehicles), close, moving)
		advice = choose_advice(signals, signalization, safety, len(vehicles), close)
		message = ADVICE_MESSAGES[advice]

		assessment = CrossingAssessment(
			signals=signals,
			signalization=signalization,
			safety=safety,
			vehicles=len(vehicles),
			close_vehicles=close,
			moving_vehicles=moving,
			advice=advice,
			message=message,
		)
		log("crossing.assessed", {
			"signalization": signalization,
			"safety": safety,
			"vehicles": len(vehicles),
			"close": close,
			"advice": advice.value,
		})
		return assessment
