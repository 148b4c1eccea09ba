from collections.abc import Mapping

from fastapi import Request

from expense_api.core.errors import UnauthorizedError, ValidationError

# Development headers carrying the caller id directly, in precedence order.
DEV_ID_HEADERS = ("x-user-id", "x-dev-user-id")
MISSING_REQUESTER_MESSAGE = "Missing requester user id (x-user-id or Authorization header)"


def _header(headers: Mapping[str, str], name: str) -> str:
    # Starlette headers are case-insensitive; plain dicts in tests may not be.
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                value = candidate
                break
    return (value or "").strip()


def parse_bearer_id(authorization: str) -> str | None:
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def extract_requester_id(headers: Mapping[str, str]) -> str | None:
    """Resolve the caller id from a dev header, else from a bearer token.

    The value is trusted as-is: nothing here authenticates it.
    """
    for name in DEV_ID_HEADERS:
        value = _header(headers, name)
        if value:
            return value
    return parse_bearer_id(_header(headers, "authorization"))


def has_identity_signal(headers: Mapping[str, str]) -> bool:
    if any(_header(headers, name) for name in DEV_ID_HEADERS):
        return True
    return bool(_header(headers, "authorization"))


def require_requester(req: Request, strict: bool) -> str:
    user_id = extract_requester_id(req.headers)
    if user_id:
        return user_id
    if strict:
        raise UnauthorizedError()
    raise ValidationError(MISSING_REQUESTER_MESSAGE, fields=["x-user-id"])


def get_client_ip(req: Request) -> str:
    """Peer address of the connection.

    Forwarding headers are not read here: uvicorn (``proxy_headers``) rewrites
    the client address only for trusted proxies, so callers cannot pick their key.
    """
    if req.client:
        return req.client.host
    return "unknown"
