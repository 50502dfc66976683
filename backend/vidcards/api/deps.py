"""Request identity taken from proxy-supplied headers."""

from __future__ import annotations

import json
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel, Field


class CurrentUser(BaseModel):
    id: str
    name: str
    profile_image: Optional[str] = None
    roles: list[str] = Field(default_factory=list)


def _parse_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return [part.strip() for part in raw.split(",") if part.strip()]
    return [str(item) for item in value] if isinstance(value, list) else []


def get_optional_user(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_name: Annotated[Optional[str], Header()] = None,
    x_user_profile_image: Annotated[Optional[str], Header()] = None,
    x_user_roles: Annotated[Optional[str], Header()] = None,
) -> Optional[CurrentUser]:
    if not x_user_id or not x_user_name:
        return None
    return CurrentUser(
        id=x_user_id,
        name=x_user_name,
        profile_image=x_user_profile_image,
        roles=_parse_list(x_user_roles),
    )


def require_user(user: Annotated[Optional[CurrentUser], Depends(get_optional_user)]) -> CurrentUser:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user
