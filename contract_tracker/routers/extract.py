import asyncio
import base64
import binascii
import logging
import time
import uuid
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from openai import APIStatusError, OpenAIError
from .. import config, schemas
from ..auth import UserSession, get_current_session, require_permission
from ..ai_service import ContractAIService, get_ai_service
from ..extraction import extract_text_from_docx_bytes, extract_text_from_pdf_bytes

logger = logging.getLogger(__name__)

router = APIRouter()

EXTRACTION_TIMEOUT_SECONDS = 60.0


def _decode_payload(encoded, label: str) -> bytes:
	if not encoded:
		raise HTTPException(status_code=400, detail=f"No {label} data provided")
	try:
		data = base64.b64decode(encoded, validate=True)
	except (binascii.Error, ValueError):
		raise HTTPException(status_code=400, detail=f"{label} data is not valid base64")
	if len(data) > config.MAX_DOCUMENT_BYTES:
		raise HTTPException(status_code=413, detail="File too large")
	return data


async def _run_extraction(request_id: str, func, data: bytes, label: str):
	start = time.time()
	try:
		result = await asyncio.wait_for(asyncio.to_thread(func, data), timeout=EXTRACTION_TIMEOUT_SECONDS)
	except asyncio.TimeoutError:
		logger.warning("[%s] %s extraction timed out after %.0fs", request_id, label, EXTRACTION_TIMEOUT_SECONDS)
		raise HTTPException(status_code=408, detail="Text extraction timed out. Please try a smaller file.")
	except Exception as e:
		logger.error("[%s] %s extraction failed: %s", request_id, label, e)
		raise HTTPException(status_code=500, detail=f"Failed to extract text from {label}: {e}")
	logger.info("[%s] %s extraction complete in %.2fs", request_id, label, time.time() - start)
	return result


@router.post("/extract-pdf-text")
async def extract_pdf_text(payload: schemas.PdfExtractRequest, session: UserSession = Depends(get_current_session)):
	request_id = str(uuid.uuid4())[:8]
	data = _decode_payload(payload.pdf_base64, "PDF")
	text, used_ocr, pages = await _run_extraction(request_id, extract_text_from_pdf_bytes, data, "PDF")
	return {"text": text, "pages": pages, "used_ocr": used_ocr}


@router.post("/extract-docx-text")
async def extract_docx_text(payload: schemas.DocxExtractRequest, session: UserSession = Depends(get_current_session)):
	request_id = str(uuid.uuid4())[:8]
	data = _decode_payload(payload.docx_base64, "DOCX")
	text, messages = await _run_extraction(request_id, extract_text_from_docx_bytes, data, "DOCX")
	return {"text": text, "messages": messages}


@router.post("/ai/messages")
async def forward_messages(
	payload: schemas.ProxyRequest,
	session: UserSession = Depends(require_permission("can_use_ai")),
	ai: ContractAIService = Depends(get_ai_service),
):
	"""Pass a message list to the model provider and return its raw response"""
	try:
		return await ai.forward(payload.messages, payload.max_tokens, payload.model)
	except APIStatusError as e:
		logger.warning("AI provider returned %s: %s", e.status_code, e.message)
		return JSONResponse(status_code=e.status_code, content={"error": "provider_error", "detail": e.message})
	except OpenAIError as e:
		logger.error("AI provider request failed: %s", e)
		return JSONResponse(status_code=502, content={"error": "transport_error", "detail": str(e)})
