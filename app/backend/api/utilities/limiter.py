# app/backend/api/utilities/limiter.py

from fastapi import Request
import jwt

from slowapi import Limiter
from slowapi.util import get_remote_address

from ...config.config import settings

def get_limiter_key(request: Request) -> str:
    """
    Rate limit key: the user id of a bearer token when one is present,
    otherwise the client address. Expired tokens still identify their user.
    """
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1]
        try:
            payload = jwt.decode(
                token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM],
                options={"verify_exp": False}
            )
            user_id = payload.get("user_id")
            if user_id:
                return str(user_id)
        except jwt.PyJWTError:
            # Unreadable token, fall back to the address.
            pass

    return get_remote_address(request)

# In-process storage by default; point RATE_LIMITER_REDIS_URL at Redis when running several workers.
limiter = Limiter(key_func=get_limiter_key, storage_uri=settings.RATE_LIMITER_REDIS_URL)
