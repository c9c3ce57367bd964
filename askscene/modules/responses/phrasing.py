from __future__ import annotations
from typing import Sequence

from askscene.modules.language.translations import DEFAULT_DICTIONARY, ObjectTranslationDictionary
from askscene.modules.scene.models import Zone

ZONE_HINTS = {
	Zone.LEFT: "on your left",
	Zone.CENTER: "in front of you",
	Zone.RIGHT: "on your right",
}


def with_article(noun: str) -> str:
	return f"an {noun}" if noun[:1] in "aeiou" else f"a {noun}"


def quantity(display: str, count: int, dictionary: ObjectTranslationDictionary = DEFAULT_DICTIONARY) -> str:
	if count == 1:
		return with_article(display)
	return f"{count} {dictionary.plural(display)}"


def join_natural(items: Sequence[str]) -> str:
	"""["a car", "2 people", "a bus"] -> "a car, 2 people and a bus"."""
	if not items:
		return ""
	if len(items) == 1:
		return items[0]
	return f"{', '.join(items[:-1])} and {items[-1]}"


def zone_hint(zone: Zone) -> str:
	return ZONE_HINTS[zone]


def format_distance(distance: float) -> str:
	if distance < 1.0:
		return f"{int(distance * 100)} centimeters away"
	if distance < 10.0:
		return f"{distance:.1f} meters away"
	return f"{int(distance)} meters away"


def sentence(text: str) -> str:
	text = text.strip()
	if not text:
		return text
	text = text[0].upper() + text[1:]
	return text if text.endswith((".", "!", "?")) else text + "."
