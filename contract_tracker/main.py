import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from .config import LOG_LEVEL
from .database import init_db
from .errors import ContractTrackerError
from .routers import ai, auth, contracts, dashboard, extract, users

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Contract Tracker")

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(contracts.router, prefix="/contracts", tags=["contracts"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
app.include_router(ai.router, prefix="/ai", tags=["ai"])
app.include_router(extract.router, prefix="/api", tags=["api"])

ERROR_STATUS = {
	"validation_error": 400,
	"permission_denied": 403,
	"not_found": 404,
	"extraction_failed": 422,
	"unparsable_response": 502,
	"transport_error": 502,
	"store_error": 500,
}


@app.exception_handler(ContractTrackerError)
async def contract_tracker_error_handler(request: Request, exc: ContractTrackerError):
	status_code = ERROR_STATUS.get(exc.kind, 500)
	if status_code >= 500:
		logger.error("%s %s failed (%s): %s", request.method, request.url.path, exc.kind, exc.message)
	return JSONResponse(status_code=status_code, content={"error": exc.kind, "detail": exc.message})


@app.on_event("startup")
async def on_startup() -> None:
	init_db()


@app.get("/health")
async def health():
	return {"status": "ok"}
