import logging
from typing import Optional

from fastapi import Depends, Request
from itsdangerous import BadSignature, URLSafeTimedSerializer
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from schemas import AuthContext
from services import ClientNotFound, UserService

logger = logging.getLogger(__name__)

SESSION_KEY = "client_id"


class NotAuthenticated(Exception):
    pass


def _token_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(get_settings().secret_key, salt="api-token")


def issue_token(context: AuthContext) -> str:
    return _token_serializer().dumps({"c": context.client_id, "u": context.username})


def read_token(token: str) -> Optional[int]:
    try:
        data = _token_serializer().loads(
            token, max_age=get_settings().token_max_age_secs
        )
    except BadSignature:
        logger.info("token_rejected: reason=bad_signature")
        return None
    client_id = data.get("c") if isinstance(data, dict) else None
    return client_id if isinstance(client_id, int) else None


def _bearer_token(request: Request) -> Optional[str]:
    scheme, _, value = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def optional_context(
    request: Request, db: Session = Depends(get_db)
) -> Optional[AuthContext]:
    client_id = request.session.get(SESSION_KEY)
    if client_id is None:
        token = _bearer_token(request)
        if token:
            client_id = read_token(token)
    if client_id is None:
        return None
    try:
        return UserService(db).context_for_client(int(client_id))
    except ClientNotFound:
        request.session.pop(SESSION_KEY, None)
        return None


def current_context(
    context: Optional[AuthContext] = Depends(optional_context),
) -> AuthContext:
    if context is None:
        raise NotAuthenticated()
    return context


def login_session(request: Request, context: AuthContext) -> None:
    request.session[SESSION_KEY] = context.client_id
    logger.info(f"session_opened: client_id={context.client_id}")


def logout_session(request: Request) -> None:
    client_id = request.session.get(SESSION_KEY)
    request.session.clear()
    logger.info(f"session_closed: client_id={client_id}")
