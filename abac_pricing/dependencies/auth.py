from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from abac_pricing.core.security import decode_access_token
from abac_pricing.enums.user_roles import UserRole
from abac_pricing.services.pricing_engine.context import ActingUser

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

ADMIN_ROLES = {UserRole.owner.value, UserRole.admin.value}


def get_current_user(token: str = Depends(oauth2_scheme)) -> ActingUser:
    token_data = decode_access_token(token)

    if not token_data.user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not token_data.business_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is not bound to a business",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not token_data.role or not token_data.role.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token carries no role",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return ActingUser(
        user_id=token_data.user_id,
        tenant_id=token_data.business_id,
        role=token_data.role.strip().lower(),
    )


def require_auth(user: ActingUser = Depends(get_current_user)) -> ActingUser:
    return user


def require_admin(user: ActingUser = Depends(get_current_user)) -> ActingUser:
    if user.role not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user
