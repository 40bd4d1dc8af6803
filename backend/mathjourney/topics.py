"""Fixed topic sequence for the Number & Algebra unit and its learning resources."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple

from .schemas import Difficulty

# Order is the progression order.
TOPICS: Tuple[str, ...] = (
	"Binomial Theorem",
	"Complex Numbers",
	"Sequences and Series",
	"Mathematical Induction and Contradiction",
	"Exponents and Logarithms",
)

# Every keyword must appear (as a substring) in a free-text topic name for it
# to resolve to the canonical topic. Covers variants such as
# "Exponential and Logarithmic Functions" or "Arithmetic Sequences".
_TOPIC_KEYWORDS: Dict[str, Tuple[str, ...]] = {
	"Binomial Theorem": ("binomial",),
	"Complex Numbers": ("complex",),
	"Sequences and Series": ("sequence",),
	"Mathematical Induction and Contradiction": ("induction",),
	"Exponents and Logarithms": ("exponent", "logarithm"),
}

LEARNING_RESOURCES: Dict[str, List[Dict[str, str]]] = {
	"Binomial Theorem": [
		{
			"type": "video",
			"title": "Binomial theorem [IB Maths AA SL/HL]",
			"source": "YouTube",
			"url": "https://www.youtube.com/watch?v=x83Yx6jffik",
		},
		{
			"type": "video",
			"title": "The Binomial Theorem (IB Maths SL)",
			"source": "YouTube",
			"url": "https://www.youtube.com/watch?v=SZw-5-_TY_A",
		},
		{
			"type": "video",
			"title": "Intro to the Binomial Theorem",
			"source": "Khan Academy",
			"url": "https://www.khanacademy.org/math/precalculus/x9e81a4f98389efdf:series/x9e81a4f98389efdf:binomial/v/binomial-theorem",
		},
	],
	"Complex Numbers": [
		{
			"type": "pdf",
			"title": "MATHEMATICS: ANALYSIS AND APPROACHES - Problem-Attic",
			"source": "Problem-Attic",
			"url": "https://www.problem-attic.com/resources/align/IB_Math1.pdf",
		},
	],
	"Sequences and Series": [
		{
			"type": "video",
			"title": "IB Math: 1.2 Intro to Arithmetic Sequences and Series",
			"source": "YouTube",
			"url": "https://www.youtube.com/watch?v=APxzmyvsQYg",
		},
		{
			"type": "video",
			"title": "IB Math HL: Fast-Track Your Understanding of Sequences & Series!",
			"source": "YouTube",
			"url": "https://www.youtube.com/watch?v=tD62VWa4Nek",
		},
		{
			"type": "video playlist",
			"title": "IB Maths: Applications and Interpretation SL Tutorials",
			"source": "YouTube",
			"url": "https://www.youtube.com/playlist?list=PL9ZMjp5ej6hF7MydqUmzVk7M6-Fh7u_X5",
		},
	],
	"Mathematical Induction and Contradiction": [
		{
			"type": "pdf",
			"title": "MATHEMATICS: ANALYSIS AND APPROACHES - Problem-Attic",
			"source": "Problem-Attic",
			"url": "https://www.problem-attic.com/resources/align/IB_Math1.pdf",
		},
	],
	"Exponents and Logarithms": [
		{
			"type": "video",
			"title": "Logarithms [IB Maths AA SL/HL]",
			"source": "YouTube",
			"url": "https://www.youtube.com/watch?v=4RyOGlG9rxQ",
		},
		{
			"type": "video",
			"title": "Exponential & Logarithmic Functions [IB Math AA SL/HL]",
			"source": "YouTube",
			"url": "https://www.youtube.com/watch?v=z5MO5Uo44Qw",
		},
		{
			"type": "video",
			"title": "Exponential and Logarithmic Functions (IB Maths SL)",
			"source": "YouTube",
			"url": "https://www.youtube.com/watch?v=NeRJ2PGpsJw",
		},
		{
			"type": "video",
			"title": "Logarithms and natural logarithms 1 [IB Maths AI SL/HL]",
			"source": "YouTube",
			"url": "https://www.youtube.com/watch?v=1pwc562j1CU",
		},
		{
			"type": "pdf",
			"title": "1.2 Exponentials & Logs | DP IB Maths: AA SL Revision Notes 2021",
			"source": "Save My Exams",
			"url": "https://cdn.savemyexams.com/pdfs/W8kQHNpug.pdf",
		},
		{
			"type": "pdf",
			"title": "Worksheet 2.7 Logarithms and Exponentials",
			"source": "Macquarie University",
			"url": "http://maths.mq.edu.au/numeracy/web_mums/module2/Worksheet27/module2.pdf",
		},
	],
}


def _key(name: str) -> str:
	return re.sub(r"[^a-z0-9]+", " ", name.lower()).strip()


_CANONICAL_BY_KEY: Dict[str, str] = {_key(t): t for t in TOPICS}


def canonical_topic(name: Optional[str]) -> Optional[str]:
	"""Resolve a free-text topic name to a member of TOPICS, or None."""
	if not name:
		return None
	key = _key(name)
	if key in _CANONICAL_BY_KEY:
		return _CANONICAL_BY_KEY[key]
	matches = [t for t, words in _TOPIC_KEYWORDS.items() if all(w in key for w in words)]
	# Ambiguous names ("binomial and complex") resolve to nothing
	if len(matches) == 1:
		return matches[0]
	return None


def is_last_topic(topic: str) -> bool:
	return topic == TOPICS[-1]


def resources_for(topic: str) -> List[Dict[str, str]]:
	return LEARNING_RESOURCES.get(topic, [])


def worksheet_id(topic: str, difficulty: Difficulty | str) -> str:
	level = difficulty.value if isinstance(difficulty, Difficulty) else difficulty
	return f"{re.sub(r'[^a-z0-9]', '_', topic.lower())}_{level}"
