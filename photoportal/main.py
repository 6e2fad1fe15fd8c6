import logging
import time
import uuid
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from photoportal.core.config import settings
from photoportal.core.logging import setup_logging, set_request_id
from photoportal.db.session import engine, Base
from photoportal.routers import admin, auth, health, photos, picker, selection
import photoportal.db.models  # noqa: F401  registers tables on Base

setup_logging(settings.LOG_DIR)

app = FastAPI(title="Photo Selection Portal", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        set_request_id(rid)
        start = time.perf_counter()
        response = await call_next(request)
        dur_ms = int((time.perf_counter() - start) * 1000)
        client = request.client.host if request.client else "-"
        logging.getLogger("photoportal.request").info(
            f"{client} {request.method} {request.url.path} {response.status_code} {dur_ms}ms",
            extra={"method": request.method, "path": str(request.url.path), "status": response.status_code, "dur_ms": dur_ms},
        )
        response.headers["X-Request-ID"] = rid
        return response

app.add_middleware(RequestIdMiddleware)

app.include_router(health.router)
app.include_router(photos.router)
app.include_router(picker.router)
app.include_router(selection.router)
app.include_router(admin.router)
app.include_router(auth.router)

@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("photoportal.main:app", host="0.0.0.0", port=8000, reload=True)
