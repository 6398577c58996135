from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Union

DateLike = Union[date, datetime]

MONTH_ABBREVIATIONS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def _as_date(value: DateLike) -> date:
	if isinstance(value, datetime):
		return value.date()
	return value


def days_until(value: Optional[DateLike], today: Optional[date] = None) -> Optional[int]:
	"""Signed number of days from today until value (negative once it has passed)"""
	if value is None:
		return None
	today = today or date.today()
	return (_as_date(value) - today).days


def urgency_level(days: int) -> str:
	if days < 0:
		return "expired"
	if days <= 30:
		return "critical"
	if days <= 60:
		return "high"
	if days <= 90:
		return "medium"
	return "low"


def cancellation_deadline(end_date: Optional[DateLike], notice_days: Optional[int]) -> Optional[date]:
	"""Last day notice can be given to stop an auto-renewal"""
	if end_date is None or notice_days is None:
		return None
	return _as_date(end_date) - timedelta(days=notice_days)


def is_past_cancellation_deadline(deadline: Optional[DateLike], today: Optional[date] = None) -> bool:
	if deadline is None:
		return False
	today = today or date.today()
	return today > _as_date(deadline)


def group_by_month(contracts: Iterable, year: int) -> List[list]:
	"""Bucket contracts into 12 lists by the month of their end date.

	Contracts ending outside of year are left out of every bucket.
	"""
	grouped = [[] for _ in range(12)]
	for contract in contracts:
		end_date = contract.end_date
		if end_date is None:
			continue
		end_date = _as_date(end_date)
		if end_date.year == year:
			grouped[end_date.month - 1].append(contract)
	return grouped


def month_labels(year: int) -> List[str]:
	return [f"{month} {year}" for month in MONTH_ABBREVIATIONS]


def format_file_size(size: Optional[int]) -> str:
	if not size:
		return "0 Bytes"
	units = ["Bytes", "KB", "MB", "GB"]
	value = float(size)
	i = 0
	while value >= 1024 and i < len(units) - 1:
		value /= 1024
		i += 1
	return f"{round(value, 2):g} {units[i]}"
