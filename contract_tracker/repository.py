import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from . import models
from .errors import NotFoundError, StoreError, ValidationError
from .helpers import days_until

logger = logging.getLogger(__name__)

CONTRACT_TYPES = ("vendor", "customer")
REQUIRED_CONTRACT_FIELDS = ("name", "type", "start_date", "end_date")
READ_ONLY_CONTRACT_FIELDS = ("id", "created_at", "created_by")
NON_NULLABLE_CONTRACT_FIELDS = ("name", "status", "start_date", "end_date", "auto_renewal", "cancellation_notice_days")
ASSESSMENT_FIELDS = ("contract_id", "summary", "risk_level", "findings", "key_terms", "assessment_criteria", "model_used", "file_name")


def _contract_columns() -> set:
	return set(models.Contract.__table__.columns.keys())


def _commit(db: Session, action: str) -> None:
	try:
		db.commit()
	except SQLAlchemyError as e:
		db.rollback()
		logger.error("Store error during %s: %s", action, e)
		raise StoreError(f"Failed to {action}: {e}") from e


def _check_date_order(start_date, end_date) -> None:
	if start_date and end_date and end_date < start_date:
		raise ValidationError("end_date must not be before start_date")


def _apply_auto_renewal_invariant(contract: models.Contract) -> None:
	if not contract.auto_renewal:
		contract.auto_renewal_period = None


async def create_contract(db: Session, data: Dict[str, Any], owner_id: str) -> str:
	missing = [field for field in REQUIRED_CONTRACT_FIELDS if data.get(field) in (None, "")]
	if missing:
		raise ValidationError(f"Missing required fields: {', '.join(missing)}")
	if data["type"] not in CONTRACT_TYPES:
		raise ValidationError(f"Invalid contract type: {data['type']}")
	_check_date_order(data["start_date"], data["end_date"])

	columns = _contract_columns()
	values = {key: value for key, value in data.items() if key in columns and key != "id"}
	now = datetime.utcnow()
	values["created_by"] = owner_id
	values.setdefault("created_at", now)
	values.setdefault("updated_at", now)
	if not values.get("status"):
		values["status"] = "active"
	values["assessed"] = False
	values["auto_renewal"] = bool(values.get("auto_renewal"))
	if values["type"] == "customer" and not values.get("sync_status"):
		values["sync_status"] = "pending"

	contract = models.Contract(**values)
	_apply_auto_renewal_invariant(contract)
	db.add(contract)
	_commit(db, "create contract")
	logger.info("Created %s contract %s for user %s", contract.type, contract.id, owner_id)
	return contract.id


async def get_contract(db: Session, contract_id: str) -> models.Contract:
	try:
		contract = db.get(models.Contract, contract_id)
	except SQLAlchemyError as e:
		raise StoreError(f"Failed to load contract: {e}") from e
	if not contract:
		raise NotFoundError("Contract not found")
	return contract


async def update_contract(db: Session, contract_id: str, fields: Dict[str, Any]) -> models.Contract:
	contract = await get_contract(db, contract_id)
	if "type" in fields and fields["type"] != contract.type:
		raise ValidationError("Contract type cannot be changed after creation")
	cleared = [key for key in NON_NULLABLE_CONTRACT_FIELDS if key in fields and fields[key] is None]
	if cleared:
		raise ValidationError(f"Fields cannot be cleared: {', '.join(cleared)}")
	# Checked against the merged record before anything is assigned
	_check_date_order(fields.get("start_date", contract.start_date), fields.get("end_date", contract.end_date))

	columns = _contract_columns()
	for key, value in fields.items():
		if key in columns and key not in READ_ONLY_CONTRACT_FIELDS:
			setattr(contract, key, value)
	_apply_auto_renewal_invariant(contract)
	contract.updated_at = datetime.utcnow()
	_commit(db, "update contract")
	db.refresh(contract)
	return contract


async def list_contracts(
	db: Session,
	type: Optional[str] = None,
	status: Optional[str] = None,
	contract_type: Optional[str] = None,
	customer_id: Optional[str] = None,
	limit: Optional[int] = None,
) -> List[models.Contract]:
	query = db.query(models.Contract)
	if type:
		query = query.filter(models.Contract.type == type)
	if status:
		query = query.filter(models.Contract.status == status)
	if contract_type:
		query = query.filter(models.Contract.contract_type == contract_type)
	if customer_id:
		query = query.filter(models.Contract.customer_id == customer_id)
	query = query.order_by(models.Contract.end_date.asc())
	if limit:
		query = query.limit(limit)
	try:
		return query.all()
	except SQLAlchemyError as e:
		raise StoreError(f"Failed to list contracts: {e}") from e


async def list_expiring(db: Session, start_date: date, end_date: date, type: Optional[str] = None) -> List[models.Contract]:
	query = db.query(models.Contract).filter(
		models.Contract.end_date >= start_date,
		models.Contract.end_date <= end_date,
		models.Contract.status == "active",
	)
	if type:
		query = query.filter(models.Contract.type == type)
	try:
		return query.order_by(models.Contract.end_date.asc()).all()
	except SQLAlchemyError as e:
		raise StoreError(f"Failed to list expiring contracts: {e}") from e


async def delete_contract(db: Session, contract_id: str) -> None:
	"""Remove the contract record.

	The stored document and any assessments of the contract are left in place.
	"""
	contract = await get_contract(db, contract_id)
	db.delete(contract)
	_commit(db, "delete contract")
	logger.info("Deleted contract %s", contract_id)


async def save_assessment(db: Session, assessment_data: Dict[str, Any], assessor_id: str) -> str:
	"""Insert an assessment, then point its contract at it.

	The two writes are not atomic. When the second one fails the assessment is
	kept and link_assessment can be re-run for it.
	"""
	values = {key: assessment_data.get(key) for key in ASSESSMENT_FIELDS if assessment_data.get(key) is not None}
	if not values.get("summary") or not values.get("risk_level"):
		raise ValidationError("Assessment requires summary and risk_level")
	assessment = models.Assessment(assessed_by=assessor_id, assessed_at=datetime.utcnow(), **values)
	db.add(assessment)
	_commit(db, "save assessment")

	if assessment.contract_id:
		try:
			await link_assessment(db, assessment.contract_id, assessment.id)
		except (NotFoundError, StoreError) as e:
			logger.warning("Assessment %s saved but contract %s was not updated: %s", assessment.id, assessment.contract_id, e)
	return assessment.id


async def link_assessment(db: Session, contract_id: str, assessment_id: str) -> models.Contract:
	assessment = await get_assessment(db, assessment_id)
	return await update_contract(db, contract_id, {
		"assessment_id": assessment.id,
		"assessed": True,
		"risk_level": assessment.risk_level,
		"assessment_summary": assessment.summary,
	})


async def get_assessment(db: Session, assessment_id: str) -> models.Assessment:
	try:
		assessment = db.get(models.Assessment, assessment_id)
	except SQLAlchemyError as e:
		raise StoreError(f"Failed to load assessment: {e}") from e
	if not assessment:
		raise NotFoundError("Assessment not found")
	return assessment


async def list_assessments(db: Session, contract_id: str) -> List[models.Assessment]:
	try:
		return (
			db.query(models.Assessment)
			.filter(models.Assessment.contract_id == contract_id)
			.order_by(models.Assessment.assessed_at.desc())
			.all()
		)
	except SQLAlchemyError as e:
		raise StoreError(f"Failed to list assessments: {e}") from e


async def get_stats(db: Session, today: Optional[date] = None) -> Dict[str, int]:
	contracts = await list_contracts(db)

	def expiring_soon(contract) -> bool:
		days = days_until(contract.end_date, today)
		return 0 < days <= 90

	return {
		"total": len(contracts),
		"vendor": sum(1 for c in contracts if c.type == "vendor"),
		"customer": sum(1 for c in contracts if c.type == "customer"),
		"active": sum(1 for c in contracts if c.status == "active"),
		"expiring_soon": sum(1 for c in contracts if expiring_soon(c)),
		"high_risk": sum(1 for c in contracts if c.risk_level == "high"),
		"auto_renewal": sum(1 for c in contracts if c.auto_renewal),
	}


async def record_sync_result(db: Session, contract_id: str, result) -> models.Contract:
	if result.success:
		fields = {
			"freshsales_id": result.freshsales_id,
			"sync_status": "synced",
			"last_synced_at": result.synced_at,
		}
	else:
		fields = {"sync_status": "error"}
	return await update_contract(db, contract_id, fields)


# User profiles

async def get_user(db: Session, user_id: str) -> models.User:
	try:
		user = db.get(models.User, user_id)
	except SQLAlchemyError as e:
		raise StoreError(f"Failed to load user: {e}") from e
	if not user:
		raise NotFoundError("User not found")
	return user


async def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
	return db.query(models.User).filter_by(email=(email or "").strip().lower()).first()


async def list_users(db: Session) -> List[models.User]:
	return db.query(models.User).order_by(models.User.created_at.asc()).all()


async def create_user(db: Session, email: str, password_hash: str, password_salt: str, **profile) -> models.User:
	user = models.User(
		email=email.strip().lower(),
		password_hash=password_hash,
		password_salt=password_salt,
		**profile,
	)
	db.add(user)
	_commit(db, "create user")
	db.refresh(user)
	return user


async def update_user(db: Session, user_id: str, fields: Dict[str, Any]) -> models.User:
	user = await get_user(db, user_id)
	for key, value in fields.items():
		setattr(user, key, value)
	_commit(db, "update user")
	db.refresh(user)
	return user


async def delete_user(db: Session, user_id: str) -> None:
	"""Remove the user record. Contracts the user created are kept."""
	user = await get_user(db, user_id)
	db.delete(user)
	_commit(db, "delete user")
