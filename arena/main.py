import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from arena.api.endpoints import divisions as division_endpoints
from arena.api.endpoints import tournaments as tournament_endpoints
from arena.core.exceptions import ArenaError
from arena.core.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Arena Tournament & Division API")

app.include_router(tournament_endpoints.router, prefix="/tournaments", tags=["Tournaments"])
app.include_router(division_endpoints.router, prefix="/divisions", tags=["Divisions"])


@app.exception_handler(ArenaError)
async def arena_error_handler(request: Request, exc: ArenaError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/")
async def read_root():
    return {"service": "arena", "status": "ok"}
