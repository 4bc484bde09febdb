"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from leadflow.api.v1.endpoints import (
    auth,
    leads,
    spreadsheets,
    dashboard,
    reports,
    team,
    activities,
    websockets,
    health,
)

api_router = APIRouter()

# Session
api_router.include_router(auth.router)

# Leads and the views derived from them
api_router.include_router(leads.router)
api_router.include_router(spreadsheets.router)
api_router.include_router(dashboard.router)
api_router.include_router(reports.router)

# Staff and the change log
api_router.include_router(team.router)
api_router.include_router(activities.router)
api_router.include_router(websockets.router)

api_router.include_router(health.router)
