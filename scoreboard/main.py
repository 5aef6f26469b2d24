import logging

from fastapi import FastAPI

from scoreboard.api.endpoints import audit as audit_endpoints
from scoreboard.api.endpoints import brackets as bracket_endpoints
from scoreboard.api.endpoints import queue as queue_endpoints
from scoreboard.api.endpoints import scores as score_endpoints
from scoreboard.api.endpoints import seeding as seeding_endpoints
from scoreboard.core.config import settings
import scoreboard.models # Registers the models and creates the tables

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Scoreboard API")

app.include_router(score_endpoints.router, prefix="/scores", tags=["Scores"])
app.include_router(seeding_endpoints.router, prefix="/seeding", tags=["Seeding"])
app.include_router(bracket_endpoints.router, prefix="/brackets", tags=["Brackets"])
app.include_router(queue_endpoints.router, prefix="/queue", tags=["Queue"])
app.include_router(audit_endpoints.router, prefix="/audit", tags=["Audit"])
