import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from zwledger import __version__
from zwledger.config import Settings, configure_logging
from zwledger.crypto.hashing import digest_hex
from zwledger.errors import LedgerError
from zwledger.ledger.core import ZWLedger
from zwledger.ledger.routes import router as ledger_router
from zwledger.merkle.routes import router as merkle_router

logger = logging.getLogger(__name__)


def create_app(ledger: Optional[ZWLedger] = None) -> FastAPI:
    """
    Build the API around `ledger`, or around one built from ZW_* environment
    settings at startup when none is given.
    """
    app = FastAPI(title="zwledger API", version=__version__)
    app.state.ledger = ledger

    @app.on_event("startup")
    def _startup():
        if app.state.ledger is None:
            settings = Settings.from_env()
            configure_logging(settings.log_level)
            app.state.ledger = ZWLedger.from_settings(settings)
        lg = app.state.ledger
        logger.info("ledger ready: depth %d, %d commitments, root %s",
                    lg.state.accumulator.depth, lg.commitment_count(), digest_hex(lg.root()))

    @app.exception_handler(LedgerError)
    async def _ledger_error(request: Request, exc: LedgerError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code,
                            content={"ok": False, "reason": exc.code, "detail": exc.detail})

    @app.get("/health")
    def health():
        lg = app.state.ledger
        return {"ok": lg is not None, "version": __version__}

    app.include_router(merkle_router)
    app.include_router(ledger_router)
    return app


app = create_app()
