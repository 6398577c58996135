from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import AliasChoices, BaseModel, Field, model_validator
from .helpers import cancellation_deadline, days_until, format_file_size, is_past_cancellation_deadline, urgency_level

ContractKind = Literal["vendor", "customer"]
CustomerContractType = Literal["msa", "nda", "service", "project"]
RiskLevel = Literal["low", "medium", "high"]
Role = Literal["viewer", "editor", "admin"]
ComparisonFocus = Literal["terms", "risks", "pricing", "favorable"]
ComparisonMode = Literal["existing", "proposals", "renewal"]


class ContractFields(BaseModel):
	status: Optional[str] = None
	area: Optional[str] = None
	type_of_contract: Optional[str] = None
	users_or_account_number: Optional[str] = None
	requested_from: Optional[str] = None
	contract_type: Optional[CustomerContractType] = None
	service_type: Optional[List[str]] = None
	customer_id: Optional[str] = None
	date_signed: Optional[date] = None
	initial_expiration_date: Optional[date] = None
	renewal_date: Optional[date] = None
	auto_renewal: Optional[bool] = None
	auto_renewal_period: Optional[int] = Field(None, ge=1)
	cancellation_notice_days: Optional[int] = Field(None, ge=0)
	notes: Optional[str] = None
	tags: Optional[List[str]] = None


class ContractCreate(ContractFields):
	name: str = Field(..., min_length=1)
	type: ContractKind
	start_date: date
	end_date: date
	auto_renewal: bool = False
	cancellation_notice_days: int = Field(0, ge=0)

	@model_validator(mode="after")
	def check_dates(self):
		if self.end_date < self.start_date:
			raise ValueError("end_date must not be before start_date")
		return self


class ContractUpdate(ContractFields):
	name: Optional[str] = Field(None, min_length=1)
	start_date: Optional[date] = None
	end_date: Optional[date] = None

	@model_validator(mode="after")
	def check_dates(self):
		if self.start_date and self.end_date and self.end_date < self.start_date:
			raise ValueError("end_date must not be before start_date")
		return self


class ContractRead(BaseModel):
	id: str
	name: str
	type: str
	status: str
	area: Optional[str] = None
	type_of_contract: Optional[str] = None
	users_or_account_number: Optional[str] = None
	requested_from: Optional[str] = None
	contract_type: Optional[str] = None
	service_type: Optional[List[str]] = None
	customer_id: Optional[str] = None
	start_date: date
	end_date: date
	date_signed: Optional[date] = None
	initial_expiration_date: Optional[date] = None
	renewal_date: Optional[date] = None
	auto_renewal: bool
	auto_renewal_period: Optional[int] = None
	cancellation_notice_days: int
	notes: Optional[str] = None
	tags: Optional[List[str]] = None
	assessed: bool
	risk_level: Optional[str] = None
	assessment_summary: Optional[str] = None
	assessment_id: Optional[str] = None
	document_url: Optional[str] = None
	document_name: Optional[str] = None
	document_size: Optional[int] = None
	document_type: Optional[str] = None
	freshsales_id: Optional[str] = None
	sync_status: Optional[str] = None
	last_synced_at: Optional[datetime] = None
	created_by: Optional[str] = None
	created_at: datetime
	updated_at: datetime
	# Derived from end_date at read time
	days_until_expiry: Optional[int] = None
	urgency: Optional[str] = None
	cancellation_deadline: Optional[date] = None
	past_cancellation_deadline: bool = False
	document_size_label: Optional[str] = None

	class Config:
		from_attributes = True

	@model_validator(mode="after")
	def derive_deadlines(self):
		self.days_until_expiry = days_until(self.end_date)
		self.urgency = urgency_level(self.days_until_expiry)
		self.cancellation_deadline = cancellation_deadline(self.end_date, self.cancellation_notice_days)
		self.past_cancellation_deadline = is_past_cancellation_deadline(self.cancellation_deadline)
		if self.document_size is not None:
			self.document_size_label = format_file_size(self.document_size)
		return self


class Finding(BaseModel):
	type: Optional[str] = None
	category: str
	severity: RiskLevel
	description: str
	excerpt: Optional[str] = None
	recommendation: Optional[str] = None


class AssessmentAnalysis(BaseModel):
	"""Shape the language model must return for a single-document assessment"""
	summary: str
	risk_level: RiskLevel = Field(validation_alias=AliasChoices("risk_level", "riskLevel"))
	findings: List[Finding] = []
	key_terms: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("key_terms", "keyTerms"))


class ComparedContract(BaseModel):
	name: str
	strengths: List[str] = []
	weaknesses: List[str] = []
	key_terms: List[str] = Field(default_factory=list, validation_alias=AliasChoices("key_terms", "keyTerms"))
	score: Optional[int] = Field(None, ge=1, le=10)


class KeyDifference(BaseModel):
	category: str
	description: str
	impact: RiskLevel
	favors_buyer: Optional[bool] = Field(None, validation_alias=AliasChoices("favors_buyer", "favorsBuyer"))


class ComparisonAnalysis(BaseModel):
	"""Shape the language model must return for a multi-contract comparison"""
	summary: str
	contracts: List[ComparedContract]
	key_differences: List[KeyDifference] = Field(validation_alias=AliasChoices("key_differences", "keyDifferences"))
	recommendation: str
	concerns: List[str] = []
	action_items: Optional[List[str]] = Field(None, validation_alias=AliasChoices("action_items", "actionItems"))


class RelevantContract(BaseModel):
	id: Optional[str] = None
	name: str
	reason: str
	key_details: Optional[str] = Field(None, validation_alias=AliasChoices("key_details", "keyDetails"))


class QueryAnalysis(BaseModel):
	answer: str
	relevant_contracts: List[RelevantContract] = Field(default_factory=list, validation_alias=AliasChoices("relevant_contracts", "relevantContracts"))
	observations: List[str] = []


class AssessmentRead(BaseModel):
	id: str
	contract_id: Optional[str] = None
	summary: str
	risk_level: str
	findings: List[Finding] = []
	key_terms: Dict[str, Any] = {}
	assessment_criteria: List[str] = []
	model_used: Optional[str] = None
	file_name: Optional[str] = None
	assessed_by: Optional[str] = None
	assessed_at: datetime

	class Config:
		from_attributes = True


class AssessRequest(BaseModel):
	criteria: List[str] = []


class ComparisonRead(BaseModel):
	comparison: ComparisonAnalysis
	mode: ComparisonMode
	focus: ComparisonFocus
	model_used: str


class QueryRequest(BaseModel):
	question: str = Field(..., min_length=1)


class ProxyRequest(BaseModel):
	model: Optional[str] = None
	max_tokens: int = Field(1000, ge=1)
	messages: List[Dict[str, Any]]


class ContractStats(BaseModel):
	total: int
	vendor: int
	customer: int
	active: int
	expiring_soon: int
	high_risk: int
	auto_renewal: int


class CalendarMonth(BaseModel):
	label: str
	contracts: List[ContractRead]


class CalendarRead(BaseModel):
	year: int
	months: List[CalendarMonth]
	vendor_count: int
	customer_count: int
	auto_renewal_count: int


class SyncRead(BaseModel):
	success: bool
	freshsales_id: Optional[str] = None
	contact_id: Optional[str] = None
	synced_at: Optional[datetime] = None
	error: Optional[str] = None
	message: Optional[str] = None


class SyncReportRead(BaseModel):
	attempted: int
	synced: int
	errors: int


class PdfExtractRequest(BaseModel):
	pdf_base64: Optional[str] = Field(None, validation_alias=AliasChoices("pdfBase64", "pdf_base64"))


class DocxExtractRequest(BaseModel):
	docx_base64: Optional[str] = Field(None, validation_alias=AliasChoices("docxBase64", "docx_base64"))


class NotificationPreferences(BaseModel):
	email: bool = True
	renewal_alerts: bool = True
	cancellation_alerts: bool = True
	alert_days_before: int = Field(30, ge=0)


class UserRead(BaseModel):
	id: str
	email: str
	display_name: Optional[str] = None
	department: Optional[str] = None
	role: str
	notifications: NotificationPreferences
	needs_password_reset: bool
	created_at: datetime
	last_login_at: Optional[datetime] = None

	class Config:
		from_attributes = True


class UserCreate(BaseModel):
	email: str = Field(..., min_length=3)
	display_name: Optional[str] = None
	department: Optional[str] = None
	role: Role = "viewer"


class UserCreated(BaseModel):
	user: UserRead
	temporary_password: str


class RoleUpdate(BaseModel):
	role: Role


class PasswordChange(BaseModel):
	current_password: str
	new_password: str = Field(..., min_length=8)
