import os
import hashlib
import hmac
import base64
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session
import jwt
from .config import SECRET_KEY, ACCESS_TOKEN_EXPIRE_MINUTES
from .database import get_db
from .errors import PermissionDenied
from . import models

logger = logging.getLogger(__name__)

JWT_ALG = "HS256"
COOKIE_NAME = "access_token"
ROLES = ("viewer", "editor", "admin")


@dataclass(frozen=True)
class UserSession:
	"""Authenticated caller, passed explicitly into every handler that needs it"""
	user_id: str
	role: Optional[str]


@dataclass(frozen=True)
class Permissions:
	can_view: bool
	can_use_ai: bool
	can_create: bool
	can_edit: bool
	can_delete: bool
	can_sync: bool
	can_manage_users: bool
	is_admin: bool
	is_editor: bool
	is_viewer: bool


def permissions_for(role: Optional[str]) -> Permissions:
	editor = role in ("editor", "admin")
	admin = role == "admin"
	return Permissions(
		can_view=True,
		can_use_ai=True,
		can_create=editor,
		can_edit=editor,
		can_delete=editor,
		can_sync=editor,
		can_manage_users=admin,
		is_admin=admin,
		is_editor=editor,
		is_viewer=role == "viewer",
	)


def _pbkdf2_hash(password: str, salt: str) -> str:
	return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), 100_000).hex()


def hash_password(password: str) -> tuple[str, str]:
	salt = base64.urlsafe_b64encode(os.urandom(16)).decode("utf-8")
	pwd_hash = _pbkdf2_hash(password, salt)
	return pwd_hash, salt


def verify_password(password: str, password_hash: str, password_salt: str) -> bool:
	calc = _pbkdf2_hash(password, password_salt)
	return hmac.compare_digest(calc, password_hash)


def generate_temporary_password() -> str:
	return secrets.token_urlsafe(9) + "Aa1!"


def create_access_token(user_id: str) -> str:
	exp = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
	payload = {"sub": str(user_id), "exp": exp}
	return jwt.encode(payload, SECRET_KEY, algorithm=JWT_ALG)


def decode_access_token(token: str) -> Optional[str]:
	try:
		payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALG])
	except jwt.PyJWTError as e:
		logger.debug("Rejected access token: %s", e)
		return None
	return payload.get("sub")


def _token_from_request(request: Request) -> Optional[str]:
	token = request.cookies.get(COOKIE_NAME)
	if token:
		return token
	header = request.headers.get("Authorization", "")
	if header.lower().startswith("bearer "):
		return header[7:].strip()
	return None


async def get_current_user(request: Request, db: Session = Depends(get_db)) -> models.User:
	token = _token_from_request(request)
	if not token:
		raise HTTPException(status_code=401, detail="Not authenticated")
	user_id = decode_access_token(token)
	if not user_id:
		raise HTTPException(status_code=401, detail="Invalid token")
	user = db.get(models.User, user_id)
	if not user:
		raise HTTPException(status_code=401, detail="User not found")
	return user


async def get_current_session(user: models.User = Depends(get_current_user)) -> UserSession:
	# Role comes from the stored profile, never from the token
	return UserSession(user_id=user.id, role=user.role)


def require_permission(name: str):
	"""Dependency that yields the session when its role grants permission name"""
	async def check(session: UserSession = Depends(get_current_session)) -> UserSession:
		if not getattr(permissions_for(session.role), name):
			raise PermissionDenied(f"Your role does not allow this action ({name})")
		return session
	return check
