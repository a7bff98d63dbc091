import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import DecodeError, StateIOError
from .models import Credential
from .utils import parse_timestamp


def _credential_to_json(credential: Credential) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"access_token": credential.access_token}
    if credential.refresh_token:
        payload["refresh_token"] = credential.refresh_token
    payload["scope"] = sorted(credential.scopes)
    payload["expires_at"] = credential.expires_at.astimezone(timezone.utc).isoformat()
    return payload


def save_credential(path: str, credential: Credential) -> None:
    if not path:
        raise StateIOError("token path is empty")
    token_path = Path(path)
    try:
        token_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        token_path.write_text(json.dumps(_credential_to_json(credential), indent=2) + "\n", encoding="utf-8")
        os.chmod(token_path, 0o600)
    except OSError as exc:
        raise StateIOError(f"write token file: {exc}") from exc


def load_credential(path: str) -> Optional[Credential]:
    token_path = Path(path)
    try:
        raw = token_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise StateIOError(f"read token file: {exc}") from exc

    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise DecodeError(f"decode token: {exc}") from exc
    if not isinstance(data, dict) or not data.get("access_token"):
        raise DecodeError("decode token: token file must be a JSON object with an access_token")

    expires_at = parse_timestamp(data.get("expires_at")) or datetime.fromtimestamp(0, timezone.utc)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return Credential(
        access_token=str(data["access_token"]),
        refresh_token=data.get("refresh_token") or None,
        scopes=frozenset(data.get("scope") or []),
        expires_at=expires_at,
    )
