"""
数据库引擎与会话工厂

PostgreSQL 走 asyncpg，SQLite 走 aiosqlite；订单的条件更新依赖
驱动返回准确的 rowcount，两者均满足。
"""
from typing import Any

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import settings
from infrastructure.models import Base


_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def to_async_url(database_url: str) -> URL:
    """补全异步驱动名；已显式指定驱动时原样返回"""
    url = make_url(database_url)
    if "+" in url.drivername:
        return url
    if url.drivername not in _ASYNC_DRIVERS:
        raise ValueError(f"不支持的数据库驱动: {url.drivername}，请检查 DATABASE__URL")
    return url.set(drivername=_ASYNC_DRIVERS[url.drivername])


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    url = to_async_url(database_url)
    options: dict[str, Any] = {"echo": echo}
    if url.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            # 内存库只在单连接内可见
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
    return create_async_engine(url, **options)


engine = build_engine(settings.database.url, echo=settings.database.echo)

AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables():
    """按模型建表（仅开发环境在启动时调用）"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
