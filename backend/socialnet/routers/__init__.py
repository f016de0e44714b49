from fastapi import APIRouter, Depends

from ..auth import current_session
from . import auth, likes, posts, rooms, users

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)

# everything outside /auth needs a signed-in session
for module in (posts, likes, users, rooms):
    api_router.include_router(module.router, dependencies=[Depends(current_session)])
