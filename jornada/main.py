import logging

from fastapi import FastAPI
from jornada.config import settings
from jornada.core.classifier import get_policy
from jornada.db.base import Base, engine
from jornada.db import models  # noqa: F401  registers tables on Base.metadata
from jornada.api import employees, attendance

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# unknown CLASSIFICATION_POLICY raises here
get_policy()
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Jornada Attendance API", version="0.1.0", docs_url="/docs", redoc_url="/redoc")
logger.info("Attendance API up (policy=%s, tz=%s)", settings.classification_policy, settings.local_timezone)

@app.get("/")
def root(): return {"ok": True, "msg": "API is running"}

@app.get("/test")
def test(): return {"ok": True, "msg": "Test endpoint is working"}

app.include_router(employees.router)
app.include_router(attendance.router)
