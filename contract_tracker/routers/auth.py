import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Response, Form
from sqlalchemy.orm import Session
from ..database import get_db
from .. import models, repository, schemas
from ..auth import hash_password, verify_password, create_access_token, get_current_user, permissions_for, COOKIE_NAME
from ..config import ACCESS_TOKEN_EXPIRE_MINUTES, COOKIE_SECURE, COOKIE_SAMESITE, COOKIE_DOMAIN

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=schemas.UserRead)
async def register(email: str = Form(...), password: str = Form(...), display_name: str = Form(None), db: Session = Depends(get_db)):
	email = (email or '').strip().lower()
	if not email or not password:
		raise HTTPException(status_code=400, detail="Email and password required")
	if await repository.get_user_by_email(db, email):
		raise HTTPException(status_code=400, detail="Email already registered")
	pwd_hash, salt = hash_password(password)
	# Self-registered accounts start as viewers; admins promote them
	user = await repository.create_user(db, email, pwd_hash, salt, display_name=display_name, role="viewer")
	logger.info("Registered user %s", user.id)
	return user


@router.post("/login")
async def login(response: Response, email: str = Form(...), password: str = Form(...), db: Session = Depends(get_db)):
	user = await repository.get_user_by_email(db, email)
	if not user or not verify_password(password, user.password_hash, user.password_salt):
		raise HTTPException(status_code=401, detail="Invalid credentials")
	await repository.update_user(db, user.id, {"last_login_at": datetime.utcnow()})
	token = create_access_token(user.id)
	response.set_cookie(
		COOKIE_NAME,
		token,
		httponly=True,
		secure=COOKIE_SECURE,
		samesite=COOKIE_SAMESITE,
		domain=COOKIE_DOMAIN,
		max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
	)
	return {"ok": True, "access_token": token, "needs_password_reset": user.needs_password_reset}


@router.post("/logout")
async def logout(response: Response):
	# Mirror cookie attributes to ensure deletion across browsers
	response.delete_cookie(
		COOKIE_NAME,
		domain=COOKIE_DOMAIN,
		samesite=COOKIE_SAMESITE,
	)
	return {"ok": True}


@router.get("/whoami")
async def whoami(user: models.User = Depends(get_current_user)):
	return {
		"user": schemas.UserRead.model_validate(user),
		"permissions": permissions_for(user.role),
	}


@router.post("/password")
async def change_password(payload: schemas.PasswordChange, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
	if not verify_password(payload.current_password, user.password_hash, user.password_salt):
		raise HTTPException(status_code=400, detail="Current password is incorrect")
	pwd_hash, salt = hash_password(payload.new_password)
	await repository.update_user(db, user.id, {
		"password_hash": pwd_hash,
		"password_salt": salt,
		"needs_password_reset": False,
	})
	return {"ok": True}
