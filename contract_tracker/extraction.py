import io
import logging
from typing import List, Tuple
from PyPDF2 import PdfReader
from pdfminer.high_level import extract_text as pdfminer_extract_text
from pdf2image import convert_from_bytes
import pytesseract
from docx import Document
from .errors import ExtractionFailed

logger = logging.getLogger(__name__)

SUPPORTED_TYPES = ("pdf", "docx", "text")


def extract_text_from_pdf_bytes(data: bytes) -> Tuple[str, bool, int]:
	"""Return (text, used_ocr, pages). Attempts text extraction first; OCR fallback if needed."""
	text = ""
	pages = 0
	# Try fast extract via PyPDF2
	try:
		reader = PdfReader(io.BytesIO(data))
		pages = len(reader.pages)
		text = "\n".join(page.extract_text() or "" for page in reader.pages)
	except Exception as e:
		logger.debug("PyPDF2 extraction failed: %s", e)
		text = ""

	if text.strip():
		return text, False, pages

	# Try pdfminer (more robust)
	try:
		text = pdfminer_extract_text(io.BytesIO(data)) or ""
	except Exception as e:
		logger.debug("pdfminer extraction failed: %s", e)
		text = ""

	if text.strip():
		return text, False, pages

	# OCR fallback (limit pages and DPI to avoid timeouts/memory on PaaS)
	try:
		images = convert_from_bytes(
			data,
			dpi=200,
			fmt="png",
			first_page=1,
			last_page=10,
		)
	except Exception as e:
		raise ExtractionFailed(f"OCR backend unavailable: {e}") from e
	ocr_text_parts = []
	for img in images:
		try:
			ocr_text_parts.append(pytesseract.image_to_string(img))
		except Exception as e:
			logger.warning("OCR failed on a page: %s", e)
			ocr_text_parts.append("")
	return "\n".join(ocr_text_parts), True, pages or len(images)


def extract_text_from_docx_bytes(data: bytes) -> Tuple[str, List[str]]:
	"""Return (text, messages) for a Word document, paragraphs first then table cells."""
	try:
		document = Document(io.BytesIO(data))
	except Exception as e:
		raise ExtractionFailed(f"Could not open Word document: {e}") from e
	messages = []
	parts = [p.text for p in document.paragraphs if p.text]
	for table in document.tables:
		for row in table.rows:
			cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
			if cells:
				parts.append("\t".join(cells))
	if not parts:
		messages.append("Document contains no text paragraphs")
	return "\n".join(parts), messages


def extract_document_text(data: bytes, file_type: str) -> str:
	if file_type == "pdf":
		text, _, _ = extract_text_from_pdf_bytes(data)
	elif file_type == "docx":
		text, _ = extract_text_from_docx_bytes(data)
	elif file_type == "text":
		text = data.decode("utf-8", errors="ignore")
	else:
		raise ExtractionFailed(f"Unsupported document type: {file_type}")
	return text


def file_type_for(filename: str, content_type: str = "") -> str:
	name = (filename or "").lower()
	if content_type == "application/pdf" or name.endswith(".pdf"):
		return "pdf"
	if name.endswith(".docx") or content_type == "application/vnd.openxmlformats-officedocument.wordprocessingml.document":
		return "docx"
	if content_type.startswith("text/") or name.endswith(".txt"):
		return "text"
	return ""
