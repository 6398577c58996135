import uuid
from sqlalchemy import Column, Integer, String, Text, DateTime, Date, Boolean, JSON
from datetime import datetime
from .database import Base


def _new_id() -> str:
	return uuid.uuid4().hex


def default_notifications() -> dict:
	return {
		"email": True,
		"renewal_alerts": True,
		"cancellation_alerts": True,
		"alert_days_before": 30,
	}


class User(Base):
	__tablename__ = "users"

	id = Column(String(64), primary_key=True, default=_new_id)
	email = Column(String(255), unique=True, nullable=False, index=True)
	password_hash = Column(String(255), nullable=False)
	password_salt = Column(String(255), nullable=False)
	display_name = Column(String(255), nullable=True)
	department = Column(String(255), nullable=True)
	role = Column(String(20), nullable=False, default="viewer")  # viewer, editor, admin
	notifications = Column(JSON, nullable=False, default=default_notifications)
	needs_password_reset = Column(Boolean, nullable=False, default=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_login_at = Column(DateTime, nullable=True)


class Contract(Base):
	__tablename__ = "contracts"

	id = Column(String(64), primary_key=True, default=_new_id)
	name = Column(String(255), nullable=False)
	type = Column(String(20), nullable=False, index=True)  # vendor, customer
	status = Column(String(20), nullable=False, default="active", index=True)

	# Vendor fields
	area = Column(String(255), nullable=True)
	type_of_contract = Column(String(255), nullable=True)
	users_or_account_number = Column(String(255), nullable=True)
	requested_from = Column(String(255), nullable=True)

	# Customer fields
	contract_type = Column(String(20), nullable=True, index=True)  # msa, nda, service, project
	service_type = Column(JSON, nullable=True)
	customer_id = Column(String(64), nullable=True, index=True)

	start_date = Column(Date, nullable=False)
	end_date = Column(Date, nullable=False, index=True)
	date_signed = Column(Date, nullable=True)
	initial_expiration_date = Column(Date, nullable=True)
	renewal_date = Column(Date, nullable=True)

	auto_renewal = Column(Boolean, nullable=False, default=False)
	auto_renewal_period = Column(Integer, nullable=True)  # years, only when auto_renewal
	cancellation_notice_days = Column(Integer, nullable=False, default=0)
	notes = Column(Text, nullable=True)
	tags = Column(JSON, nullable=True)

	assessed = Column(Boolean, nullable=False, default=False)
	risk_level = Column(String(20), nullable=True)
	assessment_summary = Column(Text, nullable=True)
	assessment_id = Column(String(64), nullable=True)

	document_url = Column(String(512), nullable=True)
	document_name = Column(String(255), nullable=True)
	document_size = Column(Integer, nullable=True)
	document_path = Column(String(1024), nullable=True)
	document_type = Column(String(10), nullable=True)  # pdf, docx

	freshsales_id = Column(String(64), nullable=True)
	sync_status = Column(String(20), nullable=True)  # pending, synced, error
	last_synced_at = Column(DateTime, nullable=True)

	created_by = Column(String(64), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Assessment(Base):
	__tablename__ = "assessments"

	id = Column(String(64), primary_key=True, default=_new_id)
	# No foreign key: assessments outlive the contract they describe
	contract_id = Column(String(64), nullable=True, index=True)
	summary = Column(Text, nullable=False)
	risk_level = Column(String(20), nullable=False)
	findings = Column(JSON, nullable=False, default=list)
	key_terms = Column(JSON, nullable=False, default=dict)
	assessment_criteria = Column(JSON, nullable=False, default=list)
	model_used = Column(String(100), nullable=True)
	file_name = Column(String(255), nullable=True)
	assessed_by = Column(String(64), nullable=True)
	assessed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
