"""
Request dependencies.

Authentication happens upstream; the gateway forwards the authenticated user
in `X-User-Id` and their role in `X-User-Role` ("admin" for operators).
"""

from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException

from services.context import EngineContext, Principal, build_engine


@lru_cache(maxsize=1)
def get_engine() -> EngineContext:
    """One engine per process. Tests override this dependency."""
    return build_engine()


def get_principal(
    x_user_id: Optional[str] = Header(None, description="Authenticated user id"),
    x_user_role: Optional[str] = Header(None, description="'admin' for operators"),
) -> Principal:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return Principal(user_id=x_user_id.strip(), is_admin=(x_user_role or "").strip().lower() == "admin")
