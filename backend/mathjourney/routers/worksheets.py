from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps import get_store
from ..repository import load_result, load_worksheet
from ..store import DocumentStore

router = APIRouter(prefix="/api/worksheets", tags=["worksheets"])


@router.get("/result/{result_id}")
def get_worksheet_result(result_id: str, store: DocumentStore = Depends(get_store)):
	return load_result(store, result_id).to_document()


@router.get("/{worksheet_id}")
def get_worksheet(worksheet_id: str, store: DocumentStore = Depends(get_store)):
	return load_worksheet(store, worksheet_id).to_document()
