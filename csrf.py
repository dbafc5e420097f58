import time

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

ANONYMOUS = 0


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="csrf-token")


def generate_csrf_token(client_id: int = ANONYMOUS) -> str:
    return _serializer().dumps({"c": client_id, "ts": int(time.time())})


def validate_csrf_token(token: str, client_id: int = ANONYMOUS) -> bool:
    if not token:
        return False
    max_age = get_settings().csrf_max_age_hours * 3600
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        return False
    return isinstance(data, dict) and data.get("c") == client_id
