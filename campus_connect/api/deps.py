# app-wide FastAPI dependencies.
# Authentication lives in front of this service; it forwards the caller's
# identity as X-User-Id / X-Shop-Id headers.

from typing import Optional

from fastapi import Header

from campus_connect.errors import UnauthorizedError
from campus_connect.services.notifications import Notifier, default_notifier

_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = default_notifier()
    return _notifier

def current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise UnauthorizedError("Unauthorized: Please log in.")
    return x_user_id

def current_shop_id(x_shop_id: Optional[str] = Header(None)) -> str:
    if not x_shop_id:
        raise UnauthorizedError("Unauthorized: You do not own a shop.")
    return x_shop_id
