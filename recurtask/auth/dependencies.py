"""FastAPI dependencies for identifying the calling user.

Authentication itself belongs to the host application; it is expected to put
the authenticated user's id in the `X-User-Id` header (or override
`get_current_user_id` with its own dependency).
"""

from fastapi import Header, HTTPException, status


def get_current_user_id(
    x_user_id: str = Header(default="", alias="X-User-Id"),
) -> str:
    """Get the current user's id from the request.

    Raises:
        HTTPException: 401 if no user id was supplied
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return user_id
