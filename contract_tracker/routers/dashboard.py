from datetime import date, timedelta
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from ..database import get_db
from .. import repository, schemas
from ..auth import UserSession, get_current_session
from ..helpers import group_by_month, month_labels

router = APIRouter()

UPCOMING_WINDOW_DAYS = 90


@router.get("/stats", response_model=schemas.ContractStats)
async def stats(db: Session = Depends(get_db), session: UserSession = Depends(get_current_session)):
	return await repository.get_stats(db)


@router.get("/upcoming", response_model=List[schemas.ContractRead])
async def upcoming(
	limit: int = Query(5, ge=1, le=100),
	type: Optional[str] = None,
	db: Session = Depends(get_db),
	session: UserSession = Depends(get_current_session),
):
	"""Active contracts ending within the next 90 days, soonest first"""
	today = date.today()
	contracts = await repository.list_expiring(
		db, today + timedelta(days=1), today + timedelta(days=UPCOMING_WINDOW_DAYS), type=type,
	)
	return contracts[:limit]


@router.get("/calendar/{year}", response_model=schemas.CalendarRead)
async def calendar(
	year: int,
	type: Optional[str] = None,
	db: Session = Depends(get_db),
	session: UserSession = Depends(get_current_session),
):
	contracts = await repository.list_contracts(db, type=type)
	buckets = group_by_month(contracts, year)
	in_year = [contract for bucket in buckets for contract in bucket]
	return schemas.CalendarRead(
		year=year,
		months=[
			schemas.CalendarMonth(label=label, contracts=[schemas.ContractRead.model_validate(c) for c in bucket])
			for label, bucket in zip(month_labels(year), buckets)
		],
		vendor_count=sum(1 for c in in_year if c.type == "vendor"),
		customer_count=sum(1 for c in in_year if c.type == "customer"),
		auto_renewal_count=sum(1 for c in in_year if c.auto_renewal),
	)
