import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from toolcrib import db
from toolcrib.config import settings
from toolcrib.error import LedgerError
from toolcrib.routers import users, tools, transactions, reports
from toolcrib.store import load_ledger, save_ledger

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db.create_db_and_tables()
    with db.open_session() as session:
        app.state.ledger = load_ledger(session, seed_demo_data=settings.seed_demo_data)
        # 首次启动把默认数据落盘
        save_ledger(session, app.state.ledger.snapshot())
    yield
    # 关闭前最后落一次盘
    ledger = app.state.ledger
    with ledger.lock, db.open_session() as session:
        save_ledger(session, ledger.snapshot())
    logger.info("ledger flushed, shutting down")


app = FastAPI(title="Toolcrib - Workshop Tool Ledger", lifespan=lifespan)

app.include_router(users.router)
app.include_router(tools.router)
app.include_router(transactions.router)
app.include_router(reports.router)


@app.get("/health")
def health():
    return {"ok": True}


@app.exception_handler(LedgerError)
async def ledger_exception_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"code": "VALIDATION_ERROR", "message": "参数校验失败", "errors": jsonable_encoder(exc.errors())},
    )
