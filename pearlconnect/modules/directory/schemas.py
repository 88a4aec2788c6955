import uuid
from decimal import Decimal
from pydantic import BaseModel, Field

class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=80)
    email: str | None = None
    role: str = Field(default="customer", pattern="^(customer|provider|admin)$")
    full_name: str | None = None

class UserOut(BaseModel):
    id: uuid.UUID
    username: str
    email: str | None
    role: str
    full_name: str | None
    class Config: from_attributes = True

class ServiceCreate(BaseModel):
    provider_id: uuid.UUID
    title: str = Field(min_length=1, max_length=160)
    description: str | None = None
    price: Decimal = Field(default=Decimal("0"), ge=0)

class ServiceOut(ServiceCreate):
    class Config: from_attributes = True
    id: uuid.UUID
