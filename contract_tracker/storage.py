import os
import logging
from . import config

logger = logging.getLogger(__name__)


def _safe_name(filename: str) -> str:
	name = os.path.basename(filename or "").strip()
	return name or "document"


def document_path(contract_id: str, filename: str, root: str = None) -> str:
	root = root or config.UPLOAD_DIR
	return os.path.join(root, "contracts", contract_id, f"original-{_safe_name(filename)}")


def save_document(contract_id: str, filename: str, data: bytes, root: str = None) -> str:
	"""Write a contract document under contracts/<contract_id>/ and return its path."""
	full_path = document_path(contract_id, filename, root)
	os.makedirs(os.path.dirname(full_path), exist_ok=True)
	with open(full_path, "wb") as f:
		f.write(data)
	logger.info("Stored document for contract %s at %s (%d bytes)", contract_id, full_path, len(data))
	return full_path


def read_document(path: str) -> bytes:
	with open(path, "rb") as f:
		return f.read()


def document_exists(path: str, root: str = None) -> bool:
	if not path or not os.path.isfile(path):
		return False
	uploads_abs = os.path.abspath(root or config.UPLOAD_DIR)
	file_abs = os.path.abspath(path)
	return os.path.commonpath([uploads_abs, file_abs]) == uploads_abs
