from fastapi import APIRouter
from mediajobs.web.jobs_api import router as jobs_router
from mediajobs.web.submit_api import router as submit_router

api_router = APIRouter()

# Mount the sub-routers
api_router.include_router(jobs_router)
api_router.include_router(submit_router)
