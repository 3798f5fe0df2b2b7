import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.core.config import settings
from app.core.logging_handler import setup_logger
from app.db.database import engine, Base
from app.db import models  # noqa: F401  (registers tables on Base)
from app.routes import alarm, auth, history, medicines, profile, reminders
from app.scheduling.registry import alarm_registry

logger = setup_logger("app", level=settings.log_level)

app = FastAPI(
    title="MedMinder API",
    version="1.0.0",
    description="Medication reminders, alarms and intake history",
)

# ---- CORS Setup ----
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---- Startup / Shutdown ----
@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Database initialized.")
    await alarm_registry.start_all()

@app.on_event("shutdown")
async def on_shutdown():
    alarm_registry.shutdown()
    logger.info("🛑 Shutting down MedMinder API...")

# ---- Health Check ----
@app.get("/", tags=["system"])
async def health_check():
    return {"status": "ok", "service": "MedMinder API"}

# ---- Register Routes ----
app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(medicines.router, prefix="/medicines", tags=["Medicines"])
app.include_router(reminders.router, prefix="/reminders", tags=["Reminders"])
app.include_router(alarm.router, prefix="/alarm", tags=["Alarm"])
app.include_router(history.router, prefix="/history", tags=["History"])
app.include_router(profile.router, prefix="/profile", tags=["Profile"])

# ---- Run Locally ----
if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
