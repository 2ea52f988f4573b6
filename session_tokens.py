from itsdangerous import BadSignature, URLSafeSerializer

from config import get_settings


class InvalidSessionToken(ValueError):
    pass


def _serializer() -> URLSafeSerializer:
    settings = get_settings()
    return URLSafeSerializer(settings.session_secret, salt="import-session")


def issue_session_token(session_id: str, household_id: int) -> str:
    return _serializer().dumps({"s": session_id, "h": household_id})


def read_session_token(token: str, household_id: int) -> str:
    """Return the import session id carried by ``token`` for this household."""
    try:
        data = _serializer().loads(token)
    except BadSignature as exc:
        raise InvalidSessionToken("Import session not found") from exc

    if not isinstance(data, dict) or data.get("h") != household_id or not data.get("s"):
        raise InvalidSessionToken("Import session not found")
    return str(data["s"])
