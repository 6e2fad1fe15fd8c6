from __future__ import annotations
import hmac, json, os, time, hashlib
from base64 import urlsafe_b64encode, urlsafe_b64decode
from typing import Any, Dict
from photoportal.core.config import settings

# Compact HS256 tokens used for the OAuth `state` parameter and the admin session cookie.
OAUTH_STATE = "oauth_state"
ADMIN_SESSION = "admin_session"

class SignatureError(RuntimeError):
    pass

def _b64e(b: bytes) -> str:
    return urlsafe_b64encode(b).rstrip(b"=").decode("ascii")

def _b64d(s: str) -> bytes:
    pad = '=' * (-len(s) % 4)
    return urlsafe_b64decode((s + pad).encode("ascii"))

def _sign(message: bytes) -> str:
    secret = settings.SESSION_SECRET
    if not secret:
        raise SignatureError("SESSION_SECRET is not configured")
    sig = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return _b64e(sig)

def create_token(purpose: str, claims: Dict[str, Any], ttl_seconds: int = 300) -> str:
    ttl = max(30, int(ttl_seconds))

    header = {"alg": "HS256", "typ": purpose.upper()}
    now = int(time.time())
    payload: Dict[str, Any] = {
        **claims,
        "p": purpose,
        "iat": now,
        "exp": now + ttl,
        "n": _b64e(os.urandom(8)),
    }

    h = _b64e(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    p = _b64e(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    s = _sign(f"{h}.{p}".encode("utf-8"))
    return f"{h}.{p}.{s}"

def verify_token(token: str, purpose: str, leeway_seconds: int = 5) -> Dict[str, Any]:
    try:
        h, p, s = token.split(".")
    except ValueError as e:
        raise SignatureError("Malformed token") from e

    expected = _sign(f"{h}.{p}".encode("utf-8"))
    if not hmac.compare_digest(s, expected):
        raise SignatureError("Invalid signature")

    try:
        payload = json.loads(_b64d(p).decode("utf-8"))
    except ValueError as e:
        raise SignatureError("Invalid payload") from e

    if payload.get("p") != purpose:
        raise SignatureError("Unexpected token purpose")

    try:
        exp = int(payload.get("exp"))
        iat = int(payload.get("iat"))
    except (TypeError, ValueError) as e:
        raise SignatureError("Invalid exp/iat") from e

    now = int(time.time())
    if iat - now > leeway_seconds:
        raise SignatureError("Token issued in the future")
    if now - exp > leeway_seconds:
        raise SignatureError("Token expired")

    return payload

# ---- OAuth state -------------------------------------------------------------
def create_state(provider: str, ttl_seconds: int = 300) -> str:
    if not provider:
        raise SignatureError("provider required")
    return create_token(OAUTH_STATE, {"prov": provider}, ttl_seconds)

def verify_state(token: str) -> str:
    payload = verify_token(token, OAUTH_STATE)
    provider = payload.get("prov")
    if not provider:
        raise SignatureError("Missing provider in state")
    return provider

# ---- Admin session -----------------------------------------------------------
def create_admin_session(username: str) -> str:
    return create_token(ADMIN_SESSION, {"u": username}, settings.SESSION_TTL_SECONDS)

def verify_admin_session(token: str) -> str:
    payload = verify_token(token, ADMIN_SESSION, leeway_seconds=0)
    uid = payload.get("u")
    if not uid:
        raise SignatureError("Missing user in session")
    return uid
