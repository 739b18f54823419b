from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
import logging

from orgpay.schemas.auth import TokenData
from orgpay.core.config import settings
from orgpay.core.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

async def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)) -> TokenData:
    """Verify the identity provider's JWT and return user/org data"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False}
        )
    except JWTError as e:
        logger.warning(f"⚠️ JWT verification failed: {e}")
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    # Identity providers nest the active organization differently
    org_id = payload.get("org_id")
    if not org_id and isinstance(payload.get("o"), dict):
        org_id = payload["o"].get("id")

    return TokenData(
        user_id=user_id,
        org_id=org_id,
        email=payload.get("email")
    )

async def get_current_user(token_data: TokenData = Depends(verify_token)) -> TokenData:
    """Get current authenticated user"""
    return token_data

async def get_current_org_user(current_user: TokenData = Depends(get_current_user)) -> TokenData:
    """Authenticated user with an active organization selected"""
    if not current_user.org_id:
        raise UnauthorizedError("Unauthorized, missing organization")
    return current_user
