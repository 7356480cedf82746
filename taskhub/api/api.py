# taskhub/api/api.py

from fastapi import APIRouter

from taskhub.api.endpoints import tasks

api_router = APIRouter()

api_router.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
