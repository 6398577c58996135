import asyncio
from contract_tracker import config
from contract_tracker.database import SessionLocal, init_db
from contract_tracker.freshsales import FreshsalesClient, sync_customer_contracts


async def sync_all() -> int:
	client = FreshsalesClient()
	if not client.is_configured():
		print("Freshsales is not configured. Set FRESHSALES_DOMAIN and FRESHSALES_API_KEY.")
		return 1
	init_db()
	db = SessionLocal()
	try:
		report = await sync_customer_contracts(db, client, concurrency=config.SYNC_CONCURRENCY)
	finally:
		db.close()
		await client.aclose()
	print(f"Synced {report.synced} of {report.attempted} customer contracts, {report.errors} errors.")
	return 0 if report.errors == 0 else 2


def main() -> None:
	raise SystemExit(asyncio.run(sync_all()))


if __name__ == "__main__":
	main()
