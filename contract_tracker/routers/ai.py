import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session
from ..database import get_db
from .. import config, repository, schemas, storage
from ..auth import UserSession, require_permission
from ..ai_service import ComparisonItem, ContractAIService, DocumentInput, contract_metadata, get_ai_service
from ..extraction import SUPPORTED_TYPES, file_type_for

logger = logging.getLogger(__name__)

router = APIRouter()

use_ai = require_permission("can_use_ai")


async def _read_upload(file: UploadFile) -> bytes:
	data = await file.read()
	if len(data) > config.MAX_DOCUMENT_BYTES:
		raise HTTPException(status_code=413, detail=f"{file.filename} is too large")
	if not data:
		raise HTTPException(status_code=400, detail=f"{file.filename} is empty")
	return data


@router.post("/assess", response_model=schemas.AssessmentRead)
async def assess_document(
	file: UploadFile = File(...),
	criteria: List[str] = Form(default=[]),
	contract_id: Optional[str] = Form(None),
	db: Session = Depends(get_db),
	session: UserSession = Depends(use_ai),
	ai: ContractAIService = Depends(get_ai_service),
):
	"""Assess an uploaded document; the result is linked to contract_id when given"""
	file_type = file_type_for(file.filename or "", file.content_type or "")
	if file_type not in SUPPORTED_TYPES:
		raise HTTPException(status_code=400, detail="Only PDF, Word (.docx) and text documents can be assessed")
	if contract_id:
		await repository.get_contract(db, contract_id)
	data = await _read_upload(file)

	result = await ai.assess(DocumentInput(data=data, file_type=file_type, filename=file.filename), criteria)
	if not result.success:
		raise result.to_exception()
	assessment_id = await repository.save_assessment(
		db, result.to_record(contract_id=contract_id, file_name=file.filename), session.user_id,
	)
	return await repository.get_assessment(db, assessment_id)


@router.post("/compare", response_model=schemas.ComparisonRead)
async def compare_contracts(
	mode: schemas.ComparisonMode = Form("existing"),
	focus: schemas.ComparisonFocus = Form("terms"),
	contract_ids: List[str] = Form(default=[]),
	files: List[UploadFile] = File(default=[]),
	db: Session = Depends(get_db),
	session: UserSession = Depends(use_ai),
	ai: ContractAIService = Depends(get_ai_service),
):
	"""Compare stored contracts and/or uploaded proposals.

	Stored contracts are listed before uploads, so in renewal mode the current
	contract is always Contract 1 in the prompt. Stored contracts without a PDF
	on file are compared by their metadata.
	"""
	items = []
	for contract_id in contract_ids:
		contract = await repository.get_contract(db, contract_id)
		name = f"{contract.name} (Current)" if mode == "renewal" else contract.name
		if contract.document_type == "pdf" and storage.document_exists(contract.document_path):
			items.append(ComparisonItem(name=name, kind="existing", document=storage.read_document(contract.document_path)))
		else:
			items.append(ComparisonItem(name=name, kind="existing", metadata=contract_metadata(contract)))

	for file in files:
		if file_type_for(file.filename or "", file.content_type or "") != "pdf":
			raise HTTPException(status_code=400, detail=f"{file.filename}: proposals must be PDF documents")
		data = await _read_upload(file)
		name = f"{file.filename} (Proposed)" if mode == "renewal" else file.filename
		items.append(ComparisonItem(name=name, kind="proposal", document=data))

	if len(items) < 2:
		raise HTTPException(status_code=400, detail="Select at least two contracts to compare")

	logger.info("User %s comparing %d contracts (mode=%s, focus=%s)", session.user_id, len(items), mode, focus)
	result = await ai.compare(items, focus, mode)
	if not result.success:
		raise result.to_exception()
	return schemas.ComparisonRead(comparison=result.comparison, mode=result.mode, focus=result.focus, model_used=result.model_used)


@router.post("/query")
async def query_contracts(
	payload: schemas.QueryRequest,
	db: Session = Depends(get_db),
	session: UserSession = Depends(use_ai),
	ai: ContractAIService = Depends(get_ai_service),
):
	contracts = await repository.list_contracts(db)
	result = await ai.query_contracts(payload.question, [contract_metadata(c) for c in contracts])
	if not result.success:
		raise result.to_exception()
	return {**result.result.model_dump(), "model_used": result.model_used}
