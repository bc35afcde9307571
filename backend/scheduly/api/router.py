from fastapi import APIRouter

from scheduly.api.v1 import candidates, health, participants, projects, responses, share


api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(candidates.router, prefix="/projects", tags=["candidates"])
api_router.include_router(participants.router, prefix="/projects", tags=["participants"])
api_router.include_router(responses.router, prefix="/projects", tags=["responses"])
api_router.include_router(share.router, prefix="/projects", tags=["share"])
api_router.include_router(share.lookup_router, prefix="/share", tags=["share"])
