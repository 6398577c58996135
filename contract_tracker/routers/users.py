import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from ..database import get_db
from .. import repository, schemas
from ..auth import UserSession, get_current_session, require_permission, hash_password, generate_temporary_password

logger = logging.getLogger(__name__)

router = APIRouter()

manage_users = require_permission("can_manage_users")


@router.get("", response_model=List[schemas.UserRead])
async def list_users(db: Session = Depends(get_db), session: UserSession = Depends(manage_users)):
	return await repository.list_users(db)


@router.post("", response_model=schemas.UserCreated)
async def create_user(payload: schemas.UserCreate, db: Session = Depends(get_db), session: UserSession = Depends(manage_users)):
	"""Provision a user with a temporary password they must change on first login"""
	if await repository.get_user_by_email(db, payload.email):
		raise HTTPException(status_code=400, detail="Email already registered")
	temporary_password = generate_temporary_password()
	pwd_hash, salt = hash_password(temporary_password)
	user = await repository.create_user(
		db,
		payload.email,
		pwd_hash,
		salt,
		display_name=payload.display_name,
		department=payload.department,
		role=payload.role,
		needs_password_reset=True,
	)
	logger.info("User %s provisioned %s with role %s", session.user_id, user.id, user.role)
	return {"user": user, "temporary_password": temporary_password}


@router.patch("/{user_id}/role", response_model=schemas.UserRead)
async def update_role(user_id: str, payload: schemas.RoleUpdate, db: Session = Depends(get_db), session: UserSession = Depends(manage_users)):
	user = await repository.update_user(db, user_id, {"role": payload.role})
	logger.info("User %s changed role of %s to %s", session.user_id, user_id, payload.role)
	return user


@router.put("/me/notifications", response_model=schemas.UserRead)
async def update_notifications(payload: schemas.NotificationPreferences, db: Session = Depends(get_db), session: UserSession = Depends(get_current_session)):
	return await repository.update_user(db, session.user_id, {"notifications": payload.model_dump()})


@router.delete("/{user_id}")
async def delete_user(user_id: str, db: Session = Depends(get_db), session: UserSession = Depends(manage_users)):
	"""Delete a user's identity and profile.

	The caller comes from the verified token and their role from the stored
	profile. Contracts the deleted user created are kept.
	"""
	if user_id == session.user_id:
		raise HTTPException(status_code=400, detail="Cannot delete your own account")
	await repository.delete_user(db, user_id)
	logger.info("User %s deleted user %s", session.user_id, user_id)
	return {"ok": True, "message": "User deleted successfully"}
