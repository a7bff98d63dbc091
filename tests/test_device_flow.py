"""Device authorization poll loop tests."""

from __future__ import annotations

import io
import threading
from datetime import datetime, timezone

import httpx
import pytest

from codestash.device_flow import DeviceLogin, format_user_code
from codestash.errors import Cancelled, Denied, Expired, NetworkError, ProtocolError, Timeout
from codestash.models import DeviceCode
from codestash.token_store import load_credential

START = 1_700_000_000.0


class FakeClock:
    def __init__(self, start: float = START) -> None:
        self.now = start
        self.waits: list = []

    def __call__(self) -> float:
        return self.now

    def wait(self, seconds: float) -> bool:
        self.waits.append(seconds)
        self.now += seconds
        return False


def _login(service, tmp_path, clock: FakeClock, out: io.StringIO) -> DeviceLogin:
    return DeviceLogin(
        service.client(),
        str(tmp_path / "cfg" / "token.json"),
        out=out,
        clock=clock,
        wait=clock.wait,
    )


def _device(interval: int = 5, expires_in: int = 600) -> DeviceCode:
    return DeviceCode(
        device_code="dev-123",
        user_code="ABCDEF",
        verification_uri="https://notes.test/device",
        expires_in=expires_in,
        interval=interval,
    )


def _success(**extra):
    body = {"access_token": "at", "token_type": "Bearer", "expires_in": 3600, "scope": "notes:read notes:write"}
    body.update(extra)
    return body


@pytest.mark.parametrize(
    "code, expected",
    [
        ("ABCDEF", "ABC-DEF"),
        (" abc123 ", "abc-123"),
        ("ABCDEFG", "ABCDEFG"),
        ("ABCD", "ABCD"),
        ("", ""),
    ],
)
def test_format_user_code(code: str, expected: str) -> None:
    assert format_user_code(code) == expected


def test_pending_twice_then_success_persists_credential(service, tmp_path) -> None:
    service.add("POST", "/oauth/token", 400, {"error": "authorization_pending"})
    service.add("POST", "/oauth/token", 400, {"error": "authorization_pending"})
    service.add("POST", "/oauth/token", 200, _success(refresh_token="rt"))
    clock, out = FakeClock(), io.StringIO()

    credential = _login(service, tmp_path, clock, out).poll(_device())

    assert out.getvalue().count(".") == 2
    assert clock.waits == [5, 5, 5]
    expected_expiry = datetime.fromtimestamp(START + 15 + 3600, timezone.utc)
    assert credential.expires_at == expected_expiry
    assert credential.scopes == frozenset({"notes:read", "notes:write"})
    assert credential.refresh_token == "rt"

    stored = load_credential(str(tmp_path / "cfg" / "token.json"))
    assert stored == credential


def test_token_request_body(service, tmp_path) -> None:
    service.add("POST", "/oauth/token", 200, _success())
    clock = FakeClock()

    _login(service, tmp_path, clock, io.StringIO()).poll(_device())

    assert service.json_bodies("/oauth/token") == [
        {
            "grant_type": "device_code",
            "device_code": "dev-123",
            "client_id": "cli-id",
            "client_secret": "cli-secret",
        }
    ]


def test_slow_down_increases_interval_by_one_second(service, tmp_path) -> None:
    service.add("POST", "/oauth/token", 400, {"error": "slow_down"})
    service.add("POST", "/oauth/token", 400, {"error": "authorization_pending"})
    service.add("POST", "/oauth/token", 200, _success())
    clock, out = FakeClock(), io.StringIO()

    _login(service, tmp_path, clock, out).poll(_device(interval=5))

    assert clock.waits == [5, 6, 6]
    assert "next attempt in 6s" in out.getvalue()


def test_missing_interval_defaults_to_five_seconds(service, tmp_path) -> None:
    service.add("POST", "/oauth/token", 200, _success())
    clock = FakeClock()

    _login(service, tmp_path, clock, io.StringIO()).poll(_device(interval=0))

    assert clock.waits == [5]


def test_missing_refresh_token_stays_unset(service, tmp_path) -> None:
    service.add("POST", "/oauth/token", 200, _success())

    credential = _login(service, tmp_path, FakeClock(), io.StringIO()).poll(_device())

    assert credential.refresh_token is None


@pytest.mark.parametrize(
    "error, exc_type",
    [
        ("expired_token", Expired),
        ("access_denied", Denied),
        ("invalid_client", ProtocolError),
    ],
)
def test_terminal_oauth_errors(service, tmp_path, error: str, exc_type) -> None:
    service.add("POST", "/oauth/token", 400, {"error": error})

    with pytest.raises(exc_type) as excinfo:
        _login(service, tmp_path, FakeClock(), io.StringIO()).poll(_device())

    assert not (tmp_path / "cfg" / "token.json").exists()
    if exc_type is ProtocolError:
        assert excinfo.value.code == "invalid_client"


def test_deadline_reached_raises_timeout(service, tmp_path) -> None:
    service.add("POST", "/oauth/token", 400, {"error": "authorization_pending"})
    clock = FakeClock()

    with pytest.raises(Timeout):
        _login(service, tmp_path, clock, io.StringIO()).poll(_device(interval=5, expires_in=10))

    assert clock.waits == [5, 5]
    assert len(service.requests) == 2


def test_cancel_at_wait_boundary(service, tmp_path) -> None:
    cancel = threading.Event()
    cancel.set()
    login = DeviceLogin(
        service.client(),
        str(tmp_path / "token.json"),
        out=io.StringIO(),
        cancel=cancel,
        clock=FakeClock(),
    )

    with pytest.raises(Cancelled):
        login.poll(_device())

    assert service.requests == []


def test_keyboard_interrupt_while_waiting_cancels(service, tmp_path) -> None:
    def interrupted(seconds: float) -> bool:
        raise KeyboardInterrupt

    login = DeviceLogin(
        service.client(),
        str(tmp_path / "token.json"),
        out=io.StringIO(),
        clock=FakeClock(),
        wait=interrupted,
    )

    with pytest.raises(Cancelled):
        login.poll(_device())


def test_run_prints_instructions_and_logs_in(service, tmp_path) -> None:
    service.add(
        "POST",
        "/oauth/device/code",
        200,
        {
            "device_code": "dev-123",
            "user_code": "QWERTY",
            "verification_uri": "",
            "verification_uri_complete": "https://notes.test/device?code=QWERTY",
            "expires_in": 600,
            "interval": 2,
        },
    )
    service.add("POST", "/oauth/token", 200, _success())
    clock, out = FakeClock(), io.StringIO()

    credential = _login(service, tmp_path, clock, out).run()

    text = out.getvalue()
    assert "1. Open: https://notes.test/device?code=QWERTY" in text
    assert "2. Enter code: QWE-RTY" in text
    assert credential.access_token == "at"
    assert clock.waits == [2]
    assert service.json_bodies("/oauth/device/code") == [{"client_id": "cli-id"}]


def test_run_surfaces_transport_failure(tmp_path) -> None:
    from codestash.client import NotesClient

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = NotesClient("http://notes.test", "id", "secret", transport=httpx.MockTransport(handler))

    with pytest.raises(NetworkError):
        DeviceLogin(client, str(tmp_path / "token.json"), out=io.StringIO()).run()
