import uuid
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pearlconnect.modules.directory.models import User, Service

class DirectoryRepository:
    def __init__(self, s: AsyncSession): self.s = s

    async def add_user(self, **data) -> User:
        obj = User(**data); self.s.add(obj); await self.s.flush(); return obj
    async def get_user(self, user_id: uuid.UUID) -> User | None:
        return await self.s.get(User, user_id)
    async def list_users(self, role: str | None = None) -> Sequence[User]:
        q = select(User).order_by(User.username.asc())
        if role:
            q = q.where(User.role == role)
        r = await self.s.execute(q); return r.scalars().all()

    async def add_service(self, **data) -> Service:
        obj = Service(**data); self.s.add(obj); await self.s.flush(); return obj
    async def get_service(self, service_id: uuid.UUID) -> Service | None:
        return await self.s.get(Service, service_id)
    async def list_services(self, provider_id: uuid.UUID | None = None) -> Sequence[Service]:
        q = select(Service).order_by(Service.created_at.desc())
        if provider_id:
            q = q.where(Service.provider_id == provider_id)
        r = await self.s.execute(q); return r.scalars().all()
