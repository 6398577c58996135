import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
import httpx
from sqlalchemy.orm import Session
from . import config, repository
from .errors import ContractTrackerError, Failure, TransportError

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    freshsales_id: str
    contact_id: str
    synced_at: datetime
    success: bool = True


@dataclass
class SyncReport:
    attempted: int = 0
    synced: int = 0
    errors: int = 0


def _iso(value) -> str:
    return value.isoformat() if value else ""


class FreshsalesClient:
    """Thin async client for the Freshsales contacts and deals API"""

    def __init__(self, domain: Optional[str] = None, api_key: Optional[str] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.domain = domain or config.FRESHSALES_DOMAIN
        self.api_key = api_key or config.FRESHSALES_API_KEY
        self._http = http_client or httpx.AsyncClient(timeout=30.0)

    def is_configured(self) -> bool:
        return bool(self.domain and self.api_key)

    @property
    def base_url(self) -> str:
        return f"https://{self.domain}/api"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Token token={self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, action: str, key: str, allow_missing: bool = False, **kwargs) -> Any:
        """Send a request and return the key member of the JSON response.

        Network errors, error statuses and bodies that are not a JSON object
        holding key all raise TransportError. With allow_missing a 404 gives None.
        """
        try:
            response = await self._http.request(method, f"{self.base_url}{path}", headers=self.headers, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to {action}: {e}") from e
        if allow_missing and response.status_code == 404:
            return None
        if response.is_error:
            raise TransportError(f"Failed to {action}: {response.reason_phrase}")
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"Failed to {action}: response is not JSON") from e
        if not isinstance(data, dict) or key not in data:
            raise TransportError(f"Failed to {action}: response has no {key!r}")
        return data[key]

    async def search_contact(self, name: str) -> Optional[Dict[str, Any]]:
        """First contact matching name, or None. Search errors count as not found."""
        try:
            contacts = await self._request("GET", "/contacts/search", "search Freshsales contacts", "contacts", params={"q": name})
        except TransportError as e:
            logger.warning("Freshsales contact search failed for %r: %s", name, e.message)
            return None
        if not isinstance(contacts, list) or not contacts:
            return None
        return contacts[0]

    async def create_contact(self, contract) -> Dict[str, Any]:
        parts = contract.name.split(" ")
        payload = {
            "contact": {
                "first_name": parts[0] or contract.name,
                "last_name": " ".join(parts[1:]) or "Account",
                "company_name": contract.name,
                "custom_field": {
                    "cf_contract_type": contract.contract_type,
                    "cf_service_types": ", ".join(contract.service_type or []),
                },
            }
        }
        return await self._request("POST", "/contacts", "create Freshsales contact", "contact", json=payload)

    async def upsert_deal(self, deal_data: Dict[str, Any], existing_deal_id: Optional[str] = None) -> Dict[str, Any]:
        if existing_deal_id:
            return await self._request("PUT", f"/deals/{existing_deal_id}", "update Freshsales deal", "deal", json=deal_data)
        return await self._request("POST", "/deals", "create Freshsales deal", "deal", json=deal_data)

    async def get_deal(self, deal_id: str) -> Optional[Dict[str, Any]]:
        """The deal with deal_id, or None when Freshsales no longer has it"""
        return await self._request("GET", f"/deals/{deal_id}", "fetch Freshsales deal", "deal", allow_missing=True)

    async def test_connection(self) -> Dict[str, Any]:
        try:
            response = await self._http.get(f"{self.base_url}/contacts", headers=self.headers, params={"per_page": 1})
        except httpx.HTTPError as e:
            return {"success": False, "error": str(e)}
        return {
            "success": response.is_success,
            "status": response.status_code,
            "message": "Connected successfully" if response.is_success else "Connection failed",
        }

    async def aclose(self) -> None:
        await self._http.aclose()


def prepare_deal_data(contract, contact_id) -> Dict[str, Any]:
    """Map a customer contract onto a Freshsales deal payload"""
    contract_type = contract.contract_type or ""
    return {
        "deal": {
            "name": f"{contract.name} - {contract_type.upper()}",
            "amount": 0,
            "contact_id": contact_id,
            "expected_close": _iso(contract.end_date),
            "custom_field": {
                "cf_contract_start_date": _iso(contract.start_date),
                "cf_contract_end_date": _iso(contract.end_date),
                "cf_renewal_date": _iso(contract.renewal_date),
                "cf_auto_renewal": "Yes" if contract.auto_renewal else "No",
                "cf_auto_renewal_period": f"{contract.auto_renewal_period} years" if contract.auto_renewal_period else "",
                "cf_cancellation_notice_days": contract.cancellation_notice_days or 0,
                "cf_contract_type": contract_type,
                "cf_service_types": ", ".join(contract.service_type or []),
                "cf_contract_status": contract.status,
                "cf_risk_level": contract.risk_level or "low",
            },
        }
    }


def _object_id(obj, what: str) -> str:
    if not isinstance(obj, dict) or obj.get("id") in (None, ""):
        raise TransportError(f"Freshsales returned a {what} without an id")
    return str(obj["id"])


async def sync_contract(contract, client: FreshsalesClient):
    """Mirror one customer contract into Freshsales as a contact plus a deal.

    A stored deal id that Freshsales no longer knows is dropped and a new deal
    is created in its place.
    """
    if contract.type != "customer":
        return Failure(error="validation_error", message="Only customer contracts can be synced to Freshsales")
    if not client.is_configured():
        return Failure(error="transport_error", message="Freshsales is not configured")
    try:
        contact = await client.search_contact(contract.name)
        if contact is None:
            contact = await client.create_contact(contract)
        contact_id = _object_id(contact, "contact")
        existing_deal_id = contract.freshsales_id
        if existing_deal_id and await client.get_deal(existing_deal_id) is None:
            logger.warning("Freshsales deal %s for contract %s no longer exists, creating a new one", existing_deal_id, contract.id)
            existing_deal_id = None
        deal = await client.upsert_deal(prepare_deal_data(contract, contact_id), existing_deal_id)
        deal_id = _object_id(deal, "deal")
    except ContractTrackerError as e:
        logger.error("Freshsales sync failed for contract %s: %s", contract.id, e.message)
        return Failure.from_exception(e)
    return SyncResult(freshsales_id=deal_id, contact_id=contact_id, synced_at=datetime.utcnow())



async def sync_and_record(db: Session, contract, client: FreshsalesClient):
    result = await sync_contract(contract, client)
    if contract.type == "customer":
        await repository.record_sync_result(db, contract.id, result)
    return result


async def sync_customer_contracts(db: Session, client: FreshsalesClient, concurrency: int = 1) -> SyncReport:
    """Sync every customer contract. One failure never stops the rest of the batch.

    concurrency bounds how many contracts are in flight at once; the default of 1
    keeps the batch sequential.
    """
    contracts = await repository.list_contracts(db, type="customer")
    report = SyncReport(attempted=len(contracts))
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run(contract):
        async with semaphore:
            try:
                result = await sync_and_record(db, contract, client)
            except ContractTrackerError as e:
                logger.error("Could not record sync result for contract %s: %s", contract.id, e.message)
                report.errors += 1
                return
        if result.success:
            report.synced += 1
        else:
            report.errors += 1

    outcomes = await asyncio.gather(*(run(contract) for contract in contracts), return_exceptions=True)
    for contract, outcome in zip(contracts, outcomes):
        if isinstance(outcome, Exception):
            logger.error("Unexpected error syncing contract %s: %r", contract.id, outcome)
            report.errors += 1
    logger.info("Freshsales sync complete: %d synced, %d errors", report.synced, report.errors)
    return report


# Global instance
freshsales_client = FreshsalesClient()


def get_freshsales_client() -> FreshsalesClient:
    return freshsales_client
