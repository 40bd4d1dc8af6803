from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .repository import save_question, save_worksheet
from .schemas import Difficulty, MarkScheme, MarkSchemeStep, Question, Worksheet
from .store import DocumentStore
from .topics import worksheet_id

logger = logging.getLogger(__name__)

QUESTIONS_PER_WORKSHEET = 3


def _mark_scheme(raw: Dict[str, Any] | None) -> MarkScheme:
	raw = raw or {}
	steps = [
		MarkSchemeStep(description=str(s.get("step") or s.get("description") or ""), marks=max(0, int(s.get("marks", 0))))
		for s in raw.get("steps") or []
		if isinstance(s, dict)
	]
	total = raw.get("total_marks", raw.get("totalMarks"))
	return MarkScheme(
		total_marks=int(total) if total is not None else sum(s.marks for s in steps),
		steps=steps,
		common_errors=[str(e) for e in raw.get("common_errors") or raw.get("commonErrors") or []],
	)


def build_worksheets(questions: List[Dict[str, Any]]) -> List[Worksheet]:
	"""Group bank questions by (topic, difficulty) and keep the first three of each group.

	Groups with fewer than three questions are skipped.
	"""
	grouped: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
	for q in questions:
		grouped.setdefault((q["topic"], q["difficulty"]), []).append(q)

	worksheets: List[Worksheet] = []
	for (topic, difficulty), group in grouped.items():
		if difficulty not in {d.value for d in Difficulty}:
			logger.warning("Unknown difficulty %r for %s, skipping", difficulty, topic)
			continue
		if len(group) < QUESTIONS_PER_WORKSHEET:
			logger.warning("Not enough questions for %s - %s, skipping", topic, difficulty)
			continue
		ws_id = worksheet_id(topic, difficulty)
		worksheets.append(
			Worksheet(
				id=ws_id,
				topic=topic,
				difficulty=Difficulty(difficulty),
				questions=[
					Question(id=f"{ws_id}_q{i + 1}", text=q["question"], mark_scheme=_mark_scheme(q.get("markscheme")))
					for i, q in enumerate(group[:QUESTIONS_PER_WORKSHEET])
				],
			)
		)
	return worksheets


def load_question_bank(path: str | Path) -> List[Dict[str, Any]]:
	data = json.loads(Path(path).read_text(encoding="utf-8"))
	if isinstance(data, dict):
		data = data.get("questions", [])
	return [q for q in data if isinstance(q, dict) and q.get("topic") and q.get("difficulty") and q.get("question")]


def seed_question_bank(store: DocumentStore, path: str | Path) -> int:
	"""Store every bank question and the worksheets built from them; returns the worksheet count."""
	questions = load_question_bank(path)
	counters: Dict[Tuple[str, str], int] = {}
	for q in questions:
		key = (q["topic"], q["difficulty"])
		counters[key] = counters.get(key, 0) + 1
		save_question(store, f"{worksheet_id(*key)}_{counters[key]}", q)
	worksheets = build_worksheets(questions)
	for ws in worksheets:
		save_worksheet(store, ws)
	logger.info("Seeded %d questions and %d worksheets from %s", len(questions), len(worksheets), path)
	return len(worksheets)
