from fastapi import APIRouter

from app.api.approvals import approvals_router, payments_router
from app.api.departments import departments_router
from app.api.maintenance import maintenance_router
from app.api.me import me_router
from app.api.projects import projects_router
from app.api.reports import reports_router
from app.api.requests import admin_requests_router, trip_requests_router
from app.api.users import users_router

api_router = APIRouter()
api_router.include_router(me_router)
api_router.include_router(users_router)
api_router.include_router(departments_router)
api_router.include_router(projects_router)
api_router.include_router(trip_requests_router)
api_router.include_router(admin_requests_router)
api_router.include_router(approvals_router)
api_router.include_router(payments_router)
api_router.include_router(maintenance_router)
api_router.include_router(reports_router)
