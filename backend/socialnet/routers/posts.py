import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user
from ..db import get_db
from ..models import Post, User
from ..policies import owned_post
from ..queries import list_posts, load_post
from ..schemas import PostCreate, PostOut, Success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])


@router.get("", response_model=list[PostOut])
async def index(db: AsyncSession = Depends(get_db)):
    return await list_posts(db)


@router.get("/{id}", response_model=PostOut)
async def show(id: int, db: AsyncSession = Depends(get_db)):
    return await load_post(db, id)


@router.post("", response_model=PostOut)
async def create(body: PostCreate, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    post = Post(content=body.content, user_id=user.id)
    db.add(post)
    await db.commit()
    logger.info("User %s created post %s", user.id, post.id)
    return await load_post(db, post.id)


@router.patch("/{id}", response_model=PostOut)
async def update(body: PostCreate, post: Post = Depends(owned_post), db: AsyncSession = Depends(get_db)):
    post.content = body.content
    await db.commit()
    return await load_post(db, post.id)


@router.delete("/{id}", response_model=Success)
async def destroy(post: Post = Depends(owned_post), db: AsyncSession = Depends(get_db)):
    await db.delete(post)
    await db.commit()
    logger.info("Deleted post %s", post.id)
    return Success()
