from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends

from ..deps import get_store
from ..repository import find_questions, load_question
from ..schemas import Difficulty
from ..store import DocumentStore

router = APIRouter(prefix="/api/test-questions", tags=["test_questions"])


@router.get("")
def list_questions(
	topic: Optional[str] = None,
	difficulty: Optional[Difficulty] = None,
	store: DocumentStore = Depends(get_store),
):
	level = difficulty.value if difficulty else None
	return {"success": True, "data": find_questions(store, topic=topic, difficulty=level)}


@router.get("/{question_id}")
def get_question(question_id: str, store: DocumentStore = Depends(get_store)):
	return {"success": True, "data": load_question(store, question_id)}
