from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.src import db, exceptions, schemas
from app.src.constants import API_TITLE, API_VERSION
from app.src.functions import fuseExceptionResponses
from app.src.gateway import PersistenceGateway
from app.api.controller import app_executive, app_operator


app = FastAPI(title=API_TITLE, version=API_VERSION)

origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/executive", app_executive, "Executive API")
app.mount("/operator", app_operator, "Operator API")


# Health check endpoint, reports 503 while the database is unreachable
@app.get(
    "/health",
    tags=["Health Check"],
    response_model=schemas.HealthStatus,
    responses=fuseExceptionResponses([exceptions.DatabaseUnavailable()]),
)
async def health_check():
    try:
        session = db.sessionMaker()
        PersistenceGateway(session).scalar("SELECT 1")
        return {"status": "OK", "version": API_VERSION}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
