from datetime import datetime, timedelta, timezone
import jwt
from typing import Optional
from orderhub.core_settings import get_settings

def create_access_token(
    user_id: str,
    client_id: str,
    role: str,
    email: Optional[str] = None,
    expires_minutes: int = 60,
) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "client_id": client_id,
        "role": role,
        "email": email,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

def decode_access_token(token: str) -> Optional[dict]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.PyJWTError:
        return None
