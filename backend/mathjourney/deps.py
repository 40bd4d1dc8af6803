from __future__ import annotations
from typing import AsyncIterator, Iterator

from fastapi import Depends
from sqlalchemy.orm import Session

from .db import get_db
from .gemini_client import GeminiClient
from .settings import settings
from .store import DocumentStore


def get_store(db: Session = Depends(get_db)) -> Iterator[DocumentStore]:
	yield DocumentStore(db)


async def get_completion_client() -> AsyncIterator[GeminiClient]:
	client = GeminiClient()
	try:
		yield client
	finally:
		await client.aclose()


async def get_progress_client() -> AsyncIterator[GeminiClient]:
	# Progress checks may run on a cheaper model
	client = GeminiClient(model=settings.gemini_model_progress)
	try:
		yield client
	finally:
		await client.aclose()
