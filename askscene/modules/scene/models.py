from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class BoundingBox:
	"""Normalised rectangle, origin top-left, all values in [0, 1] of the frame."""
	x: float
	y: float
	width: float
	height: float

	@property
	def center_x(self) -> float:
		return self.x + self.width / 2.0

	@classmethod
	def from_value(cls, value: Any) -> "BoundingBox":
		if isinstance(value, BoundingBox):
			return value
		if isinstance(value, Mapping):
			return cls(float(value["x"]), float(value["y"]), float(value["width"]), float(value["height"]))
		x, y, w, h = (float(v) for v in value)
		return cls(x, y, w, h)


@dataclass(frozen=True)
class TrackedObjectSnapshot:
	object_id: int
	label: str
	score: float
	bbox: BoundingBox
	distance: Optional[float] = None
	age: float = 0.0

	@classmethod
	def from_dict(cls, data: Mapping[str, Any]) -> "TrackedObjectSnapshot":
		distance = data.get("distance")
		return cls(
			object_id=int(data["id"]),
			label=str(data["label"]),
			score=float(data.get("score", 0.0)),
			bbox=BoundingBox.from_value(data["bbox"]),
			distance=None if distance is None else float(distance),
			age=float(data.get("age", 0.0)),
		)


class Zone(str, Enum):
	LEFT = "Left"
	CENTER = "Center"
	RIGHT = "Right"


@dataclass(frozen=True)
class ObjectObservation:
	object_id: int
	label: str      # canonical
	display: str    # spoken form
	zone: Zone
	distance: Optional[float]
	score: float
	critical: bool
	navigation: bool
	vehicle: bool


@dataclass(frozen=True)
class SceneAnalysis:
	total_objects: int
	counts_by_label: Dict[str, int]
	zone_membership: Dict[Zone, List[str]]
	distances_by_key: Dict[str, float]
	critical_labels: List[str]
	navigation_labels: List[str]
	observations: Tuple[ObjectObservation, ...] = field(default_factory=tuple)

	@property
	def is_empty(self) -> bool:
		return self.total_objects == 0

	def count(self, display: str) -> int:
		return self.counts_by_label.get(display, 0)

	def of_label(self, label: str) -> List[ObjectObservation]:
		return [o for o in self.observations if o.label == label]

	def vehicles(self) -> List[ObjectObservation]:
		return [o for o in self.observations if o.vehicle]

	def has_label(self, label: str) -> bool:
		return any(o.label == label for o in self.observations)


def snapshot_from_dicts(items: Sequence[Mapping[str, Any]]) -> List[TrackedObjectSnapshot]:
	return [TrackedObjectSnapshot.from_dict(item) for item in items]
