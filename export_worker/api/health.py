from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from export_worker.models import SessionLocal

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict:
    pool = request.app.state.pool
    return {
        "ok": True,
        "running": pool.running,
        "max_concurrent": pool.max_concurrent,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/ready")
def readiness_check(request: Request):
    db = request.app.state.session_factory()
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception:
        return JSONResponse(status_code=503, content={"status": "not_ready", "database": "disconnected"})
    finally:
        db.close()


def create_app(pool, session_factory=None) -> FastAPI:
    app = FastAPI(title="AutoCut Pro - Export Worker", version="1.0.0", docs_url=None, redoc_url=None)
    app.state.pool = pool
    app.state.session_factory = session_factory or SessionLocal
    app.include_router(router)
    return app
