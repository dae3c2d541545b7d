from typing import Optional

from fastapi import Header, HTTPException


async def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> str:
    """The authenticated caller, as forwarded by the gateway in X-Actor-Id."""
    if x_actor_id is None or not x_actor_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id header.")
    return x_actor_id.strip()
