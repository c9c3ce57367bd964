from __future__ import annotations
from typing import Dict, List, Sequence

from askscene.config import SceneThresholds
from askscene.infrastructure.observability import log
from askscene.modules.language.translations import (
	DEFAULT_DICTIONARY,
	NAVIGATION_LABELS,
	VEHICLE_LABELS,
	ObjectTranslationDictionary,
)
from askscene.modules.scene.models import BoundingBox, ObjectObservation, SceneAnalysis, TrackedObjectSnapshot, Zone


class SceneAnalyzer:
	"""Reduces one tracker snapshot into a SceneAnalysis. Pure: no state survives a call."""

	def __init__(self, thresholds: SceneThresholds = SceneThresholds(), dictionary: ObjectTranslationDictionary = DEFAULT_DICTIONARY) -> None:
		self._thresholds = thresholds
		self._dictionary = dictionary

	def zone_of(self, bbox: BoundingBox) -> Zone:
		center_x = bbox.center_x
		if center_x < self._thresholds.zone_left_max:
			return Zone.LEFT
		if center_x > self._thresholds.zone_right_min:
			return Zone.RIGHT
		return Zone.CENTER

	def analyze(self, snapshot: Sequence[TrackedObjectSnapshot]) -> SceneAnalysis:
		counts_by_label: Dict[str, int] = {}
		zone_membership: Dict[Zone, List[str]] = {Zone.LEFT: [], Zone.CENTER: [], Zone.RIGHT: []}
		distances_by_key: Dict[str, float] = {}
		critical_labels: List[str] = []
		navigation_labels: List[str] = []
		observations: List[ObjectObservation] = []

		for obj in snapshot:
			display = self._dictionary.to_display(obj.label)
			counts_by_label[display] = counts_by_label.get(display, 0) + 1

			zone = self.zone_of(obj.bbox)
			zone_membership[zone].append(display)

			if obj.distance is not None:
				distances_by_key[f"{display}_{obj.object_id}"] = obj.distance

			critical = obj.score > self._thresholds.critical_score
			if critical:
				critical_labels.append(display)

			navigation = obj.label in NAVIGATION_LABELS
			if navigation:
				navigation_labels.append(display)

			observations.append(ObjectObservation(
				object_id=obj.object_id,
				label=obj.label,
				display=display,
				zone=zone,
				distance=obj.distance,
				score=obj.score,
				critical=critical,
				navigation=navigation,
				vehicle=obj.label in VEHICLE_LABELS,
			))

		analysis = SceneAnalysis(
			total_objects=len(snapshot),
			counts_by_label=counts_by_label,
			zone_membership=zone_membership,
			distances_by_key=distances_by_key,
			critical_labels=critical_labels,
			navigation_labels=navigation_labels,
			observations=tuple(observations),
		)
		log("scene.analyzed", {
			"total": analysis.total_objects,
			"by_label": counts_by_label,
			"critical": len(critical_labels),
			"navigation": len(navigation_labels),
		})
		return analysis
