import logging
import time
import uuid
from typing import List, Optional
import psutil
from fastapi import APIRouter, Depends, UploadFile, File, HTTPException
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from ..database import get_db
from .. import config, repository, schemas, storage
from ..auth import UserSession, get_current_session, require_permission
from ..ai_service import ContractAIService, DocumentInput, get_ai_service
from ..extraction import file_type_for
from ..freshsales import FreshsalesClient, get_freshsales_client, sync_and_record, sync_customer_contracts

logger = logging.getLogger(__name__)

router = APIRouter()

DOCUMENT_TYPES = ("pdf", "docx")


def _memory_mb() -> float:
	return psutil.Process().memory_info().rss / 1024 / 1024


@router.post("", response_model=schemas.ContractRead)
async def create_contract(
	payload: schemas.ContractCreate,
	db: Session = Depends(get_db),
	session: UserSession = Depends(require_permission("can_create")),
	crm: FreshsalesClient = Depends(get_freshsales_client),
):
	contract_id = await repository.create_contract(db, payload.model_dump(exclude_none=True), session.user_id)
	contract = await repository.get_contract(db, contract_id)
	if contract.type == "customer" and config.AUTO_SYNC_CUSTOMERS and crm.is_configured():
		result = await sync_and_record(db, contract, crm)
		if not result.success:
			logger.warning("Contract %s saved but Freshsales sync failed: %s", contract_id, result.message)
		contract = await repository.get_contract(db, contract_id)
	return contract


@router.get("", response_model=List[schemas.ContractRead])
async def list_contracts(
	type: Optional[str] = None,
	status: Optional[str] = None,
	contract_type: Optional[str] = None,
	customer_id: Optional[str] = None,
	limit: Optional[int] = None,
	db: Session = Depends(get_db),
	session: UserSession = Depends(get_current_session),
):
	return await repository.list_contracts(
		db, type=type, status=status, contract_type=contract_type, customer_id=customer_id, limit=limit,
	)


@router.post("/sync", response_model=schemas.SyncReportRead)
async def sync_all_customer_contracts(
	db: Session = Depends(get_db),
	session: UserSession = Depends(require_permission("can_sync")),
	crm: FreshsalesClient = Depends(get_freshsales_client),
):
	if not crm.is_configured():
		raise HTTPException(status_code=503, detail="Freshsales is not configured")
	report = await sync_customer_contracts(db, crm, concurrency=config.SYNC_CONCURRENCY)
	return schemas.SyncReportRead(attempted=report.attempted, synced=report.synced, errors=report.errors)


@router.get("/{contract_id}", response_model=schemas.ContractRead)
async def get_contract(contract_id: str, db: Session = Depends(get_db), session: UserSession = Depends(get_current_session)):
	return await repository.get_contract(db, contract_id)


@router.patch("/{contract_id}", response_model=schemas.ContractRead)
async def update_contract(
	contract_id: str,
	payload: schemas.ContractUpdate,
	db: Session = Depends(get_db),
	session: UserSession = Depends(require_permission("can_edit")),
):
	return await repository.update_contract(db, contract_id, payload.model_dump(exclude_unset=True))


@router.delete("/{contract_id}")
async def delete_contract(contract_id: str, db: Session = Depends(get_db), session: UserSession = Depends(require_permission("can_delete"))):
	await repository.delete_contract(db, contract_id)
	return {"ok": True}


@router.post("/{contract_id}/document", response_model=schemas.ContractRead)
async def upload_document(
	contract_id: str,
	file: UploadFile = File(...),
	db: Session = Depends(get_db),
	session: UserSession = Depends(require_permission("can_edit")),
):
	request_id = str(uuid.uuid4())[:8]
	start_time = time.time()
	filename = file.filename or "document"
	logger.info("[%s] Document upload started - User: %s, Contract: %s, File: %s", request_id, session.user_id, contract_id, filename)

	await repository.get_contract(db, contract_id)

	file_type = file_type_for(filename, file.content_type or "")
	if file_type not in DOCUMENT_TYPES:
		logger.info("[%s] Unsupported document type: %s", request_id, file.content_type)
		raise HTTPException(status_code=400, detail="Only PDF and Word (.docx) documents are supported")

	if file.size and file.size > config.MAX_DOCUMENT_BYTES:
		raise HTTPException(status_code=413, detail="File too large")
	data = await file.read()
	if len(data) > config.MAX_DOCUMENT_BYTES:
		raise HTTPException(status_code=413, detail="File too large")
	if not data:
		raise HTTPException(status_code=400, detail="Uploaded file is empty")
	logger.info("[%s] File read complete: %d bytes, Memory: %.1fMB", request_id, len(data), _memory_mb())

	try:
		path = storage.save_document(contract_id, filename, data)
	except OSError as e:
		logger.error("[%s] File save failed: %s", request_id, e)
		raise HTTPException(status_code=500, detail=f"Failed to save file: {e}")

	# Saving the same file again overwrites the same path, so a failed update can be retried
	contract = await repository.update_contract(db, contract_id, {
		"document_url": f"/contracts/{contract_id}/document",
		"document_name": filename,
		"document_size": len(data),
		"document_path": path,
		"document_type": file_type,
	})
	logger.info("[%s] Upload complete in %.2fs, Memory: %.1fMB", request_id, time.time() - start_time, _memory_mb())
	return contract


@router.get("/{contract_id}/document")
async def get_document(contract_id: str, db: Session = Depends(get_db), session: UserSession = Depends(get_current_session)):
	contract = await repository.get_contract(db, contract_id)
	if not storage.document_exists(contract.document_path):
		raise HTTPException(status_code=404, detail="File not found")
	return FileResponse(path=contract.document_path, filename=contract.document_name)


@router.post("/{contract_id}/assess", response_model=schemas.AssessmentRead)
async def assess_contract(
	contract_id: str,
	payload: schemas.AssessRequest,
	db: Session = Depends(get_db),
	session: UserSession = Depends(require_permission("can_use_ai")),
	ai: ContractAIService = Depends(get_ai_service),
):
	"""Run an AI assessment of the contract's stored document and save it"""
	contract = await repository.get_contract(db, contract_id)
	if not storage.document_exists(contract.document_path):
		raise HTTPException(status_code=400, detail="Contract has no document to assess")
	document = DocumentInput(
		data=storage.read_document(contract.document_path),
		file_type=contract.document_type or "pdf",
		filename=contract.document_name,
	)
	result = await ai.assess(document, payload.criteria)
	if not result.success:
		raise result.to_exception()
	assessment_id = await repository.save_assessment(
		db, result.to_record(contract_id=contract_id, file_name=contract.document_name), session.user_id,
	)
	return await repository.get_assessment(db, assessment_id)


@router.get("/{contract_id}/assessments", response_model=List[schemas.AssessmentRead])
async def list_assessments(contract_id: str, db: Session = Depends(get_db), session: UserSession = Depends(get_current_session)):
	return await repository.list_assessments(db, contract_id)


@router.post("/{contract_id}/sync", response_model=schemas.SyncRead)
async def sync_contract(
	contract_id: str,
	db: Session = Depends(get_db),
	session: UserSession = Depends(require_permission("can_sync")),
	crm: FreshsalesClient = Depends(get_freshsales_client),
):
	contract = await repository.get_contract(db, contract_id)
	result = await sync_and_record(db, contract, crm)
	if not result.success:
		raise result.to_exception()
	return schemas.SyncRead(
		success=True,
		freshsales_id=result.freshsales_id,
		contact_id=result.contact_id,
		synced_at=result.synced_at,
	)
