from __future__ import annotations
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class ObjectEntry:
	label: str                 # canonical tracker label
	synonyms: Tuple[str, ...]  # spoken forms, the first one is the display form
	plural: str

	@property
	def display(self) -> str:
		return self.synonyms[0]


# Order matters: lookups are first-match-wins, so multi-word entries that embed
# a shorter synonym of another entry ("traffic light" vs "light") come first.
OBJECT_ENTRIES: Tuple[ObjectEntry, ...] = (
	ObjectEntry("traffic_light", ("traffic light", "traffic lights", "stoplight", "stop light", "signal light", "light signal"), "traffic lights"),
	ObjectEntry("traffic_sign", ("traffic sign", "traffic signs", "road sign", "road signs", "stop sign", "sign", "signs"), "traffic signs"),
	ObjectEntry("crosswalk", ("crosswalk", "crosswalks", "pedestrian crossing", "zebra crossing", "zebra"), "crosswalks"),
	ObjectEntry("street_light", ("street light", "street lights", "streetlight", "lamp post", "lamppost", "street lamp"), "street lights"),
	ObjectEntry("traffic_cone", ("traffic cone", "traffic cones", "cone", "cones"), "traffic cones"),
	ObjectEntry("person", ("person", "people", "persons", "pedestrian", "pedestrians", "man", "woman", "child", "someone", "anyone"), "people"),
	ObjectEntry("cyclist", ("cyclist", "cyclists", "biker", "bikers"), "cyclists"),
	ObjectEntry("car", ("car", "cars", "automobile", "automobiles", "vehicle", "vehicles"), "cars"),
	ObjectEntry("truck", ("truck", "trucks", "lorry", "lorries", "semi"), "trucks"),
	ObjectEntry("bus", ("bus", "buses", "coach"), "buses"),
	ObjectEntry("motorcycle", ("motorcycle", "motorcycles", "motorbike", "motorbikes", "scooter", "scooters"), "motorcycles"),
	ObjectEntry("bicycle", ("bicycle", "bicycles", "bike", "bikes"), "bicycles"),
	ObjectEntry("slow_vehicle", ("slow vehicle", "slow vehicles"), "slow vehicles"),
	ObjectEntry("vehicle_group", ("group of vehicles", "vehicle group"), "groups of vehicles"),
	ObjectEntry("rail_vehicle", ("train", "trains", "tram", "trams", "rail vehicle"), "trains"),
	ObjectEntry("pole", ("pole", "poles", "post", "posts", "pillar", "pillars"), "poles"),
	ObjectEntry("curb", ("curb", "curbs", "kerb", "kerbs"), "curbs"),
	ObjectEntry("sidewalk", ("sidewalk", "sidewalks", "pavement"), "sidewalks"),
	ObjectEntry("road", ("road", "roads", "street", "streets", "lane"), "roads"),
	ObjectEntry("barrier", ("barrier", "barriers", "fence", "fences"), "barriers"),
	ObjectEntry("bench", ("bench", "benches"), "benches"),
	ObjectEntry("trash_can", ("trash can", "trash cans", "bin", "bins", "garbage can"), "trash cans"),
	ObjectEntry("fire_hydrant", ("fire hydrant", "fire hydrants", "hydrant"), "fire hydrants"),
	ObjectEntry("building", ("building", "buildings", "house", "houses"), "buildings"),
	ObjectEntry("tree", ("tree", "trees"), "trees"),
	ObjectEntry("dog", ("dog", "dogs"), "dogs"),
	ObjectEntry("stairs", ("stairs", "staircase", "steps"), "stairs"),
	ObjectEntry("door", ("door", "doors", "entrance"), "doors"),
)

NAVIGATION_LABELS = frozenset({"traffic_light", "traffic_sign", "crosswalk", "street_light", "traffic_cone"})
VEHICLE_LABELS = frozenset({"car", "truck", "bus", "motorcycle", "bicycle", "slow_vehicle", "vehicle_group", "rail_vehicle"})


@lru_cache(maxsize=512)
def _phrase_pattern(phrase: str) -> "re.Pattern[str]":
	return re.compile(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)")


def contains_phrase(text: str, phrase: str) -> bool:
	"""Whole-word phrase test: "car" matches "a car" but not "scar" or "carpet"."""
	return _phrase_pattern(phrase).search(text) is not None


class ObjectTranslationDictionary:
	"""Static bidirectional mapping between canonical labels and spoken synonyms."""

	def __init__(self, entries: Tuple[ObjectEntry, ...] = OBJECT_ENTRIES) -> None:
		self._entries = entries
		self._by_label: Dict[str, ObjectEntry] = {e.label: e for e in entries}
		self._by_display: Dict[str, ObjectEntry] = {e.display: e for e in entries}

	def to_display(self, label: str) -> str:
		"""Canonical label -> spoken display form; unknown labels are spoken with underscores as spaces."""
		entry = self._by_label.get(label)
		return entry.display if entry else label.replace("_", " ")

	def plural(self, display: str) -> str:
		entry = self._by_display.get(display)
		if entry:
			return entry.plural
		if display.endswith(("s", "x", "ch", "sh")):
			return display + "es"
		return display + "s"

	def find_in_text(self, normalized_text: str) -> Optional[Tuple[str, str]]:
		"""First (canonical label, synonym) whose synonym occurs in the text, in table order."""
		for entry in self._entries:
			for synonym in entry.synonyms:
				if contains_phrase(normalized_text, synonym):
					return entry.label, synonym
		return None


DEFAULT_DICTIONARY = ObjectTranslationDictionary()
