from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from card_checkout.config import get_settings
from card_checkout.schemas import ANONYMOUS, Buyer


def decode_token(authorization: str) -> Dict[str, Any]:
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError(scheme)
        return jwt.decode(token, get_settings().jwt_secret, algorithms=["HS256"])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")


def verify_token(authorization: str = Header(...)) -> Dict[str, Any]:
    return decode_token(authorization)


def require_admin(claims: Dict[str, Any] = Depends(verify_token)) -> Dict[str, Any]:
    if claims.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Administrator access required")
    return claims


def current_buyer(authorization: Optional[str] = Header(None)) -> Buyer:
    # Guests check out without a token
    if not authorization:
        return ANONYMOUS
    claims = decode_token(authorization)
    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    return Buyer(
        user_id=str(claims["sub"]),
        username=claims.get("preferred_username", ""),
        email=claims.get("email", ""),
    )
