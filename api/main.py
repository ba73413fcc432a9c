from dotenv import load_dotenv
load_dotenv()

import os
import logfire

# Configure Logfire BEFORE importing anything else that uses pydantic-ai
# Only send to Logfire if LOGFIRE_TOKEN is set (production) or user is authenticated (local dev)
try:
    logfire.configure()
    print("Logfire configured")
except Exception as e:
    print(f"Logfire not configured, spans stay local: {e}")
    logfire.configure(send_to_logfire=False)
logfire.instrument_pydantic_ai()
logfire.instrument_httpx()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routers import accounts, profile, tenants, plans, crm, portal, academy, insights, admin, notifications
from redis_manager import get_notifier
from contextlib import asynccontextmanager

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the tenant notifier on startup and close its Redis connection on shutdown"""
    notifier = await get_notifier()
    logfire.info("Flow Pet API started successfully")

    yield

    logfire.info("Shutting down Flow Pet API...")
    await notifier.close()

app = FastAPI(
    title="Flow Pet API",
    description="Backend API for the Flow Pet marketing site, tutor portal, CRM and super-admin console",
    version="1.0.0",
    lifespan=lifespan
)

# Comma-separated front-end origins; "*" while developing
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(accounts.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(profile.router, prefix="/api/v1/user", tags=["user"])
app.include_router(tenants.router, prefix="/api/v1/tenants", tags=["tenants"])
app.include_router(plans.router, prefix="/api/v1/pricing", tags=["pricing"])
app.include_router(crm.router, prefix="/api/v1/crm", tags=["crm"])
app.include_router(portal.router, prefix="/api/v1/portal", tags=["portal"])
app.include_router(academy.router, prefix="/api/v1/academy", tags=["academy"])
app.include_router(insights.router, prefix="/api/v1/ai", tags=["ai"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(notifications.router, prefix="/api/v1/notifications", tags=["notifications"])

@app.get("/")
async def root():
    return {
        "message": "Flow Pet API",
        "status": "running"
    }

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
    }
