from fastapi import Depends, HTTPException, status

from backend.src.auth.auth import get_current_user


def require_role(*allowed_roles):
    """Dependency factory: the current user must hold one of allowed_roles."""
    def dependency(current_user: dict = Depends(get_current_user)):
        if current_user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Only {', '.join(allowed_roles)} accounts may do this.",
            )
        return current_user
    return dependency


def check_owner(owner_id, current_user):
    """Teachers may only touch their own records; admins may touch any."""
    if current_user["role"] != "admin" and owner_id != current_user["id"]:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized for this record")
