from datetime import date, timedelta

import pytest
from conftest import contract_data, make_user

from contract_tracker import repository
from contract_tracker.errors import NotFoundError, ValidationError


@pytest.mark.asyncio
async def test_create_and_get_round_trip(db):
    contract_id = await repository.create_contract(
        db,
        contract_data(name="Acme Hosting", area="IT", cancellation_notice_days=30, tags=["hosting"]),
        "user-1",
    )

    contract = await repository.get_contract(db, contract_id)
    assert contract.name == "Acme Hosting"
    assert contract.area == "IT"
    assert contract.tags == ["hosting"]
    assert contract.status == "active"
    assert contract.assessed is False
    assert contract.created_by == "user-1"
    assert contract.sync_status is None


@pytest.mark.asyncio
async def test_customer_contracts_start_pending_sync(db):
    contract_id = await repository.create_contract(
        db, contract_data(type="customer", contract_type="msa", service_type=["support"]), "user-1"
    )
    contract = await repository.get_contract(db, contract_id)
    assert contract.sync_status == "pending"


@pytest.mark.asyncio
async def test_create_requires_core_fields(db):
    data = contract_data()
    del data["end_date"]
    with pytest.raises(ValidationError, match="end_date"):
        await repository.create_contract(db, data, "user-1")

    with pytest.raises(ValidationError):
        await repository.create_contract(db, contract_data(type="partner"), "user-1")


@pytest.mark.asyncio
async def test_auto_renewal_period_cleared_when_auto_renewal_off(db):
    contract_id = await repository.create_contract(
        db, contract_data(auto_renewal=False, auto_renewal_period=2), "user-1"
    )
    contract = await repository.get_contract(db, contract_id)
    assert contract.auto_renewal_period is None

    contract = await repository.update_contract(db, contract_id, {"auto_renewal": True, "auto_renewal_period": 3})
    assert contract.auto_renewal_period == 3

    contract = await repository.update_contract(db, contract_id, {"auto_renewal": False})
    assert contract.auto_renewal_period is None


@pytest.mark.asyncio
async def test_update_rejects_type_change_and_keeps_read_only_fields(db):
    contract_id = await repository.create_contract(db, contract_data(), "user-1")
    with pytest.raises(ValidationError):
        await repository.update_contract(db, contract_id, {"type": "customer"})

    contract = await repository.update_contract(db, contract_id, {"created_by": "someone-else", "notes": "renegotiate"})
    assert contract.created_by == "user-1"
    assert contract.notes == "renegotiate"


@pytest.mark.asyncio
async def test_missing_contract_raises_not_found(db):
    with pytest.raises(NotFoundError):
        await repository.get_contract(db, "missing")
    with pytest.raises(NotFoundError):
        await repository.update_contract(db, "missing", {"notes": "x"})


@pytest.mark.asyncio
async def test_list_contracts_orders_by_end_date_and_filters(db):
    today = date.today()
    await repository.create_contract(db, contract_data(name="late", end_date=today + timedelta(days=300)), "u")
    await repository.create_contract(db, contract_data(name="soon", end_date=today + timedelta(days=10)), "u")
    await repository.create_contract(
        db, contract_data(name="customer", type="customer", contract_type="nda", end_date=today + timedelta(days=50)), "u"
    )

    assert [c.name for c in await repository.list_contracts(db)] == ["soon", "customer", "late"]
    assert [c.name for c in await repository.list_contracts(db, type="vendor")] == ["soon", "late"]
    assert [c.name for c in await repository.list_contracts(db, contract_type="nda")] == ["customer"]
    assert len(await repository.list_contracts(db, limit=1)) == 1


@pytest.mark.asyncio
async def test_list_expiring_only_active_within_window(db):
    today = date.today()
    await repository.create_contract(db, contract_data(name="in", end_date=today + timedelta(days=20)), "u")
    await repository.create_contract(db, contract_data(name="out", end_date=today + timedelta(days=120)), "u")
    await repository.create_contract(
        db, contract_data(name="cancelled", status="cancelled", end_date=today + timedelta(days=20)), "u"
    )

    expiring = await repository.list_expiring(db, today, today + timedelta(days=90))
    assert [c.name for c in expiring] == ["in"]


@pytest.mark.asyncio
async def test_delete_contract(db):
    contract_id = await repository.create_contract(db, contract_data(), "u")
    await repository.delete_contract(db, contract_id)
    with pytest.raises(NotFoundError):
        await repository.get_contract(db, contract_id)


@pytest.mark.asyncio
async def test_stats_counts(db):
    today = date(2024, 6, 1)
    rows = [
        contract_data(name="v1", end_date=date(2024, 7, 1), auto_renewal=True, auto_renewal_period=1),
        contract_data(name="v2", end_date=date(2025, 6, 1), risk_level="high"),
        contract_data(name="v3", end_date=date(2024, 5, 1), status="expired"),
        contract_data(name="c1", type="customer", end_date=date(2025, 1, 1), auto_renewal=True),
        contract_data(name="c2", type="customer", end_date=date(2024, 12, 1)),
    ]
    for row in rows:
        row["start_date"] = date(2023, 1, 1)
        await repository.create_contract(db, row, "u")

    stats = await repository.get_stats(db, today=today)

    assert stats == {
        "total": 5,
        "vendor": 3,
        "customer": 2,
        "active": 4,
        "expiring_soon": 1,
        "high_risk": 1,
        "auto_renewal": 2,
    }


@pytest.mark.asyncio
async def test_save_assessment_links_contract(db):
    contract_id = await repository.create_contract(db, contract_data(), "u")
    assessment_id = await repository.save_assessment(
        db,
        {
            "contract_id": contract_id,
            "summary": "One-sided termination rights.",
            "risk_level": "high",
            "findings": [{"category": "cancellation", "severity": "high", "description": "90 day notice"}],
            "key_terms": {"autoRenewal": "Yes"},
            "assessment_criteria": ["cancellation notice requirements"],
            "model_used": "gpt-4o",
        },
        "assessor",
    )

    contract = await repository.get_contract(db, contract_id)
    assert contract.assessed is True
    assert contract.assessment_id == assessment_id
    assert contract.risk_level == "high"
    assert contract.assessment_summary == "One-sided termination rights."

    assessments = await repository.list_assessments(db, contract_id)
    assert [a.id for a in assessments] == [assessment_id]
    assert assessments[0].assessed_by == "assessor"


@pytest.mark.asyncio
async def test_save_assessment_kept_when_contract_is_missing(db):
    assessment_id = await repository.save_assessment(
        db, {"contract_id": "gone", "summary": "Fine.", "risk_level": "low"}, "assessor"
    )
    assessment = await repository.get_assessment(db, assessment_id)
    assert assessment.contract_id == "gone"


@pytest.mark.asyncio
async def test_save_assessment_requires_summary_and_risk(db):
    with pytest.raises(ValidationError):
        await repository.save_assessment(db, {"summary": "no risk level"}, "assessor")


@pytest.mark.asyncio
async def test_user_profile_lifecycle(db):
    user = make_user(db, role="viewer")
    assert (await repository.get_user_by_email(db, "VIEWER@example.com ")).id == user.id

    created = await repository.create_user(db, "  New@Example.com ", "hash", "salt", role="editor")
    assert created.email == "new@example.com"
    assert created.notifications["alert_days_before"] == 30

    await repository.update_user(db, created.id, {"role": "admin"})
    assert (await repository.get_user(db, created.id)).role == "admin"

    contract_id = await repository.create_contract(db, contract_data(), created.id)
    await repository.delete_user(db, created.id)
    with pytest.raises(NotFoundError):
        await repository.get_user(db, created.id)
    # Contracts outlive the user who created them
    assert (await repository.get_contract(db, contract_id)).created_by == created.id
    assert user.id in [u.id for u in await repository.list_users(db)]


@pytest.mark.asyncio
async def test_update_checks_dates_against_stored_record(db):
    contract_id = await repository.create_contract(
        db, contract_data(start_date=date(2026, 9, 17), end_date=date(2027, 9, 17)), "u"
    )

    with pytest.raises(ValidationError, match="end_date"):
        await repository.update_contract(db, contract_id, {"end_date": date(2025, 10, 17)})
    with pytest.raises(ValidationError, match="end_date"):
        await repository.update_contract(db, contract_id, {"start_date": date(2028, 1, 1)})

    contract = await repository.get_contract(db, contract_id)
    assert contract.end_date == date(2027, 9, 17)
    assert contract.start_date == date(2026, 9, 17)


@pytest.mark.asyncio
async def test_create_rejects_end_before_start(db):
    with pytest.raises(ValidationError):
        await repository.create_contract(db, contract_data(start_date=date(2025, 1, 2), end_date=date(2025, 1, 1)), "u")


@pytest.mark.asyncio
async def test_update_rejects_clearing_required_fields(db):
    contract_id = await repository.create_contract(db, contract_data(auto_renewal=True, auto_renewal_period=2), "u")

    with pytest.raises(ValidationError, match="auto_renewal"):
        await repository.update_contract(db, contract_id, {"auto_renewal": None})
    with pytest.raises(ValidationError, match="name"):
        await repository.update_contract(db, contract_id, {"name": None, "notes": "x"})

    contract = await repository.get_contract(db, contract_id)
    assert contract.auto_renewal is True
    assert contract.auto_renewal_period == 2
    assert contract.notes is None

    # Optional fields can still be cleared
    contract = await repository.update_contract(db, contract_id, {"auto_renewal_period": None})
    assert contract.auto_renewal_period is None
