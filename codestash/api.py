from typing import Any, List, Optional, Union

import httpx

from endpoints import AUTH, NOTES
from .client import NotesClient
from .errors import ApiError, NotFound, ProtocolError
from .models import DeviceCode, NoteDraft, NoteSummary, NoteUpdate, OAuthError, TokenGrant
from .utils import parse_timestamp


def _is_success(resp: httpx.Response) -> bool:
    return 200 <= resp.status_code < 300


def _json_or_none(resp: httpx.Response) -> Any:
    if not resp.content or not resp.content.strip():
        return None
    try:
        return resp.json()
    except ValueError as exc:
        raise ProtocolError(f"Non-JSON response: {resp.text[:200]}") from exc


def _oauth_error(resp: httpx.Response) -> OAuthError:
    payload = _json_or_none(resp)
    if not isinstance(payload, dict):
        raise ProtocolError(f"Unexpected error response (HTTP {resp.status_code}): {resp.text[:200]}")
    code = str(payload.get("error") or "") or "unknown_error"
    return OAuthError(raw_code=code, description=str(payload.get("error_description") or ""))


def _raise_for_api_error(resp: httpx.Response) -> None:
    if _is_success(resp):
        return
    try:
        err = _oauth_error(resp)
    except ProtocolError:
        err = OAuthError(raw_code="unknown_error")
    message = f"API error: {err.raw_code}"
    if err.description:
        message = f"{message} ({err.description})"
    if resp.status_code in (401, 403):
        raise ApiError(message, resp.status_code, code=err.raw_code, hint="Run `codestash login` to refresh your credentials.")
    if resp.status_code == 404:
        raise NotFound(message)
    raise ApiError(message, resp.status_code, code=err.raw_code)


def _require(payload: dict, key: str) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        raise ProtocolError(f"Malformed response: missing {key!r}")
    return value


def _int_field(payload: dict, key: str) -> int:
    try:
        return int(payload.get(key) or 0)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"Malformed response: {key!r} is not a number") from exc


def start_device_code(client: NotesClient) -> DeviceCode:
    resp = client.request(
        AUTH["device_code"]["method"],
        AUTH["device_code"]["path"],
        json={"client_id": client.client_id},
    )
    _raise_for_api_error(resp)
    payload = _json_or_none(resp)
    if not isinstance(payload, dict):
        raise ProtocolError(f"Unexpected device code response: {payload!r}")
    return DeviceCode(
        device_code=str(_require(payload, "device_code")),
        user_code=str(_require(payload, "user_code")),
        verification_uri=str(payload.get("verification_uri") or ""),
        verification_uri_complete=str(payload.get("verification_uri_complete") or ""),
        expires_in=_int_field(payload, "expires_in"),
        interval=_int_field(payload, "interval"),
    )


def exchange_device_code(client: NotesClient, device_code: str) -> Union[TokenGrant, OAuthError]:
    """Try to trade a device code for a token.

    OAuth errors (``authorization_pending`` and friends) are returned rather
    than raised so the poll loop can branch on them.
    """
    payload = {
        "grant_type": "device_code",
        "device_code": device_code,
        "client_id": client.client_id,
        "client_secret": client.client_secret,
    }
    resp = client.request(AUTH["token"]["method"], AUTH["token"]["path"], json=payload)
    if not _is_success(resp):
        return _oauth_error(resp)

    body = _json_or_none(resp)
    if not isinstance(body, dict):
        raise ProtocolError(f"Unexpected token response: {body!r}")
    refresh = body.get("refresh_token")
    return TokenGrant(
        access_token=str(_require(body, "access_token")),
        token_type=str(body.get("token_type") or ""),
        expires_in=_int_field(body, "expires_in"),
        refresh_token=str(refresh) if refresh else None,
        scope=str(body.get("scope") or ""),
    )


def _note_from_row(row: dict) -> NoteSummary:
    folder_id = row.get("folder_id")
    return NoteSummary(
        id=str(row.get("id") or ""),
        title=row.get("title") or "",
        language=row.get("language") or "",
        tags=list(row.get("tags") or []),
        snippet=row.get("snippet") or "",
        folder_id=str(folder_id) if folder_id is not None else None,
        updated_at=parse_timestamp(row.get("updated_at")),
    )


def list_notes(client: NotesClient, access_token: str, collection_id: str) -> List[NoteSummary]:
    path = NOTES["list"]["path"].format(collection_id=collection_id)
    resp = client.request(NOTES["list"]["method"], path, access_token=access_token)
    _raise_for_api_error(resp)
    payload = _json_or_none(resp)
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ProtocolError(f"Unexpected notes response: {str(payload)[:200]}")
    return [_note_from_row(row) for row in payload if isinstance(row, dict)]


def create_note(client: NotesClient, access_token: str, draft: NoteDraft) -> Optional[str]:
    path = NOTES["create"]["path"].format(collection_id=draft.collection_id)
    resp = client.request(NOTES["create"]["method"], path, access_token=access_token, json=draft.to_payload())
    _raise_for_api_error(resp)
    payload = _json_or_none(resp)
    if not isinstance(payload, dict):
        return None
    note_id = payload.get("id")
    return str(note_id) if note_id else None


def update_note(client: NotesClient, access_token: str, note_id: str, update: NoteUpdate) -> None:
    path = NOTES["update"]["path"].format(note_id=note_id)
    resp = client.request(NOTES["update"]["method"], path, access_token=access_token, json=update.to_payload())
    _raise_for_api_error(resp)


def filter_notes_by_folder(notes: List[NoteSummary], folder_id: str) -> List[NoteSummary]:
    if not folder_id or not folder_id.strip():
        return list(notes)
    return [note for note in notes if note.folder_id is not None and note.folder_id == folder_id]
