from fastapi import APIRouter

from homepush.api import push

api_router = APIRouter()
api_router.include_router(
    push.router,
    prefix="/push",
    tags=["push"],
)
