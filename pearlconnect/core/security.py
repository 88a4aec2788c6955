import uuid
from typing import Literal
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel
from pearlconnect.core.config import settings

http_bearer = HTTPBearer(auto_error=False)

Role = Literal["customer", "provider", "admin"]

class Principal(BaseModel):
    user_id: uuid.UUID
    role: Role = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

def _decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG], audience=settings.REQUIRED_AUDIENCE)
        return payload
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")

async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(http_bearer)) -> Principal:
    # In local dev, allow a missing token and act as an anonymous admin
    if creds is None and settings.ENV == "local":
        return Principal(user_id=uuid.uuid4(), role="admin")
    if creds is None:
        raise HTTPException(status_code=401, detail="Missing token")

    data = _decode_token(creds.credentials)
    try:
        user_id = uuid.UUID(str(data.get("sub") or data.get("user_id")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token: subject is not a user id")
    role = data.get("role", "customer")
    if role not in ("customer", "provider", "admin"):
        raise HTTPException(status_code=401, detail="Invalid token: unknown role")
    return Principal(user_id=user_id, role=role)

def require_roles(*allowed: str):
    def dep(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return principal
    return dep
