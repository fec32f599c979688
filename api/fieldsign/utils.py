import base64, binascii, hashlib, json
from typing import Tuple
from itsdangerous import URLSafeSerializer
from .config import SECRET_KEY

def decode_data_uri(value: str) -> Tuple[bytes, str]:
    """Decode "data:image/png;base64,...." (or a bare base64 payload).

    Returns the bytes and the declared mime type, ``image/png`` when none is given.
    """
    mime = "image/png"
    payload = value.strip()
    if payload.startswith("data:"):
        header, _, payload = payload.partition(",")
        declared = header[5:].split(";", 1)[0].strip()
        if declared:
            mime = declared
    try:
        data = base64.b64decode("".join(payload.split()))
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid base64 payload: {exc}") from exc
    if not data:
        raise ValueError("empty image payload")
    return data, mime

def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()

def canonical_json(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)

def make_token(payload: dict) -> str:
    s = URLSafeSerializer(SECRET_KEY, salt="signing")
    return s.dumps(payload)

def read_token(token: str) -> dict:
    s = URLSafeSerializer(SECRET_KEY, salt="signing")
    return s.loads(token)
