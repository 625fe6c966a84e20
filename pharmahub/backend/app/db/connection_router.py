# backend/app/db/connection_router.py
"""
Tenant connection routing.

Each tenant owns an isolated database. The registry keeps one lazily created
engine per ``database_name:database_user`` pair, counts the sessions handed
out on it and disposes engines that stay unused longer than the idle limit.
Directory-level work (no tenant context) goes to the shared directory pool.
"""
import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Tuple

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.encryption import get_encryption_service
from app.core.exceptions import MissingTenant, TenantNotFound, TenantInactive
from app.core.logging import get_logger
from app.db.database import async_session_local, create_engine_for, make_session_factory, normalize_async_url

logger = get_logger("connection_router")


@dataclass(frozen=True)
class TenantContext:
    """Resolved tenant identity plus the credentials of its isolated database"""

    tenant_id: str
    cnpj: str
    name: str
    database_name: str
    database_user: str
    database_password: Optional[str] = field(default=None, repr=False)
    plan: Optional[str] = None
    modules_enabled: Tuple[str, ...] = ()

    @property
    def pool_key(self) -> str:
        return f"{self.database_name}:{self.database_user}"


def build_tenant_url(base_url: str, database_name: str, user: str, password: Optional[str]) -> URL:
    """Derive a tenant database URL from the directory URL"""
    url = make_url(normalize_async_url(base_url))
    if url.get_backend_name() == "sqlite":
        # Tenant databases are sibling files of the directory database
        directory_file = Path(url.database or "pharmahub.db")
        return url.set(database=str(directory_file.with_name(f"{database_name}.db")))
    return url.set(database=database_name, username=user, password=password)


async def resolve_tenant_context(
    session: AsyncSession,
    tenant_id: Optional[str] = None,
    cnpj: Optional[str] = None,
) -> TenantContext:
    """Look up a tenant in the directory and build its routing context"""
    from app.db.repositories.tenant_repository import TenantRepository

    if not tenant_id and not cnpj:
        raise MissingTenant("Tenant not identified: send X-Tenant-ID or X-Tenant-CNPJ")

    repo = TenantRepository(session)
    tenant = await repo.get_by_id(tenant_id) if tenant_id else await repo.get_by_cnpj(cnpj)
    if tenant is None:
        raise TenantNotFound(f"Tenant {tenant_id or cnpj} not found")
    if not tenant.is_active:
        raise TenantInactive(f"Tenant {tenant.name} is {tenant.status}")

    return TenantContext(
        tenant_id=tenant.id,
        cnpj=tenant.cnpj,
        name=tenant.name,
        database_name=tenant.database_name,
        database_user=tenant.database_user,
        database_password=get_encryption_service().decrypt(tenant.database_password_enc),
        plan=tenant.plan,
        modules_enabled=tuple(tenant.modules_enabled or ()),
    )


@dataclass
class _TenantHandle:
    engine: AsyncEngine
    session_factory: async_sessionmaker
    refcount: int = 0
    last_used: float = field(default_factory=time.monotonic)


class ConnectionRegistry:
    """Reference-counted pool of tenant database engines"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        directory_session_factory: Optional[async_sessionmaker] = None,
        max_idle_seconds: Optional[float] = None,
        pool_size: Optional[int] = None,
    ):
        self.base_url = base_url or settings.DATABASE_URL
        self.directory_session_factory = directory_session_factory or async_session_local
        self.max_idle_seconds = (
            max_idle_seconds if max_idle_seconds is not None else settings.TENANT_HANDLE_MAX_IDLE_SECONDS
        )
        self.pool_size = pool_size or settings.TENANT_POOL_SIZE
        self._handles: Dict[str, _TenantHandle] = {}
        self._lock = asyncio.Lock()

    def _open_handle(self, context: TenantContext) -> _TenantHandle:
        url = build_tenant_url(
            self.base_url, context.database_name, context.database_user, context.database_password
        )
        engine = create_engine_for(url.render_as_string(hide_password=False), self.pool_size)
        logger.info("Opened tenant database handle", extra={"tenant_id": context.tenant_id})
        return _TenantHandle(engine=engine, session_factory=make_session_factory(engine))

    async def _retain(self, context: TenantContext) -> _TenantHandle:
        async with self._lock:
            handle = self._handles.get(context.pool_key)
            if handle is None:
                handle = self._handles[context.pool_key] = self._open_handle(context)
            handle.refcount += 1
            handle.last_used = time.monotonic()
            return handle

    async def _drop(self, context: TenantContext) -> None:
        async with self._lock:
            handle = self._handles.get(context.pool_key)
            if handle is not None:
                handle.refcount = max(0, handle.refcount - 1)
                handle.last_used = time.monotonic()

    @asynccontextmanager
    async def tenant_engine(self, context: TenantContext) -> AsyncIterator[AsyncEngine]:
        """Engine backing a tenant, held open (not evictable) for the duration of the block"""
        handle = await self._retain(context)
        try:
            yield handle.engine
        finally:
            await self._drop(context)

    async def acquire(self, context: TenantContext) -> AsyncSession:
        """Open a session on the tenant database; pair with release()"""
        handle = await self._retain(context)
        return handle.session_factory()

    async def release(self, context: TenantContext, session: AsyncSession) -> None:
        try:
            await session.close()
        finally:
            await self._drop(context)

    async def evict_idle(self, max_idle: Optional[float] = None) -> int:
        """Dispose engines with no open sessions that have been idle too long"""
        limit = self.max_idle_seconds if max_idle is None else max_idle
        now = time.monotonic()
        async with self._lock:
            stale = [
                key for key, handle in self._handles.items()
                if handle.refcount == 0 and now - handle.last_used >= limit
            ]
            evicted = [self._handles.pop(key) for key in stale]

        for handle in evicted:
            await handle.engine.dispose()
        if evicted:
            logger.info(f"Evicted {len(evicted)} idle tenant database handles")
        return len(evicted)

    async def run_eviction_loop(self, interval: Optional[float] = None) -> None:
        """Periodic eviction; cancelled on shutdown"""
        interval = interval or settings.TENANT_EVICTION_INTERVAL_SECONDS
        while True:
            await asyncio.sleep(interval)
            try:
                await self.evict_idle()
            except Exception:
                logger.exception("Tenant handle eviction failed")

    async def dispose_all(self) -> None:
        async with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            await handle.engine.dispose()

    def refcounts(self) -> Dict[str, int]:
        return {key: handle.refcount for key, handle in self._handles.items()}

    async def resolve(self, tenant_id: Optional[str] = None, cnpj: Optional[str] = None) -> TenantContext:
        """Key-supplied lookup against the directory"""
        async with self.directory_session_factory() as session:
            return await resolve_tenant_context(session, tenant_id=tenant_id, cnpj=cnpj)

    @asynccontextmanager
    async def tenant_session(
        self,
        context: Optional[TenantContext] = None,
        *,
        tenant_id: Optional[str] = None,
        cnpj: Optional[str] = None,
        session: Optional[AsyncSession] = None,
    ) -> AsyncIterator[AsyncSession]:
        """
        Scoped session for a tenant.

        - ``session`` given: yielded as-is and never closed here.
        - ``context`` given: fast path on the tenant database.
        - ``tenant_id``/``cnpj`` given: resolved through the directory first.
        - nothing given: a directory session.

        Sessions opened here are released on every exit path.
        """
        if session is not None:
            yield session
            return

        if context is None and (tenant_id or cnpj):
            context = await self.resolve(tenant_id=tenant_id, cnpj=cnpj)

        if context is None:
            async with self.directory_session_factory() as directory_session:
                yield directory_session
            return

        tenant_db = await self.acquire(context)
        try:
            yield tenant_db
        finally:
            await self.release(context, tenant_db)


# Process-wide registry used by the API and workers
registry = ConnectionRegistry()


def get_registry() -> ConnectionRegistry:
    return registry
