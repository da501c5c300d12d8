"""
Request dependencies for FastAPI.

Authentication happens upstream of this service; callers identify the
person acting through the X-Actor header, which is recorded in the audit log.
"""

from typing import Optional
from fastapi import Header, HTTPException, status


async def get_actor(x_actor: Optional[str] = Header(None, max_length=100)) -> Optional[str]:
    """
    FastAPI dependency returning the acting user's name, if supplied.

    Raises:
        HTTPException: 400 if the header is present but blank
    """
    if x_actor is None:
        return None

    actor = x_actor.strip()
    if not actor:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor header must not be blank",
        )
    return actor
