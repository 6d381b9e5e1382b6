"""API router aggregation."""
from fastapi import APIRouter

from ytgrab.api.endpoints import download

api_router = APIRouter()

api_router.include_router(download.router, tags=["download"])
