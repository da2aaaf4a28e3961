from fastapi import HTTPException, status

from ...models.db_models import Role
from ...modules.access import Principal


def verify_role(principal: Principal, *roles: Role):
    """Route-level role gate. Group scoping is decided by the services."""
    if principal.kind not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to perform this action."
        )
