"""OAuth 2.0 device authorization grant for the CLI.

``DeviceLogin.run`` asks the service for a device code, tells the user where
to enter it, then polls the token endpoint until the user approves, denies,
or the code expires. The wait between polls is the only place the loop
blocks and it can be interrupted through ``cancel`` (or Ctrl-C).
"""

import sys
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional, TextIO

from .api import exchange_device_code, start_device_code
from .client import NotesClient
from .errors import Cancelled, Denied, Expired, ProtocolError, Timeout
from .models import Credential, DeviceCode, OAuthError, OAuthErrorCode
from .token_store import save_credential
from .utils import get_logger

DEFAULT_INTERVAL = 5
SLOW_DOWN_STEP = 1


def format_user_code(code: str) -> str:
    code = code.strip()
    if len(code) != 6:
        return code
    return f"{code[:3]}-{code[3:]}"


class DeviceLogin:
    def __init__(
        self,
        client: NotesClient,
        token_path: str,
        out: Optional[TextIO] = None,
        cancel: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.time,
        wait: Optional[Callable[[float], bool]] = None,
    ) -> None:
        self.client = client
        self.token_path = token_path
        self.out = out or sys.stdout
        self.cancel = cancel or threading.Event()
        self.clock = clock
        # wait(seconds) returns True when cancellation was requested
        self._wait = wait or self.cancel.wait
        self.logger = get_logger("codestash.auth")

    def _print(self, text: str = "", end: str = "\n") -> None:
        self.out.write(text + end)
        self.out.flush()

    def print_instructions(self, device: DeviceCode) -> None:
        self._print("To authorize this CLI:")
        self._print(f"1. Open: {device.display_uri}")
        self._print(f"2. Enter code: {format_user_code(device.user_code)}")
        self._print("Waiting for authorization...")

    def run(self) -> Credential:
        device = start_device_code(self.client)
        self.print_instructions(device)
        return self.poll(device)

    def poll(self, device: DeviceCode) -> Credential:
        interval = device.interval if device.interval > 0 else DEFAULT_INTERVAL
        deadline = self.clock() + device.expires_in

        while True:
            if self.clock() >= deadline:
                raise Timeout("device code expired, please retry login")

            try:
                cancelled = self._wait(interval)
            except KeyboardInterrupt:
                cancelled = True
            if cancelled or self.cancel.is_set():
                raise Cancelled("login cancelled")

            result = exchange_device_code(self.client, device.device_code)
            if isinstance(result, OAuthError):
                code = result.code
                self.logger.debug("Token poll: %s", result.raw_code)
                if code is OAuthErrorCode.AUTHORIZATION_PENDING:
                    self._print(".", end="")
                    continue
                if code is OAuthErrorCode.SLOW_DOWN:
                    interval += SLOW_DOWN_STEP
                    self._print(f"\nServer asked to slow down, next attempt in {interval}s")
                    continue
                if code is OAuthErrorCode.EXPIRED_TOKEN:
                    raise Expired("device code expired, run login again", hint="Run `codestash login` again.")
                if code is OAuthErrorCode.ACCESS_DENIED:
                    raise Denied("authorization denied in the browser")
                raise ProtocolError(f"token exchange error: {result.raw_code}", code=result.raw_code)

            credential = Credential(
                access_token=result.access_token,
                refresh_token=result.refresh_token,
                scopes=frozenset(result.scope.split()),
                expires_at=datetime.fromtimestamp(self.clock() + result.expires_in, timezone.utc),
            )
            save_credential(self.token_path, credential)
            self.logger.info("Token saved to %s", self.token_path)
            return credential
