"""Local context and scope state.

The state document lives at ``<root>/.codestash/state.json`` and records the
named contexts (collection + folder bindings), which one is active, whether
the CLI is narrowed into a single note, and which local files were pushed to
which notes.

Scope has two states. ``folder`` is the initial one; ``enter_note_scope``
moves to ``note`` and ``enter_folder_scope`` or ``switch_context`` moves back.
"""

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import (
    DecodeError,
    InvalidArgument,
    NoActiveContext,
    NoActiveNote,
    NotFound,
    NotInNoteScope,
    StateIOError,
)
from .utils import get_logger

STATE_DIR = ".codestash"
STATE_FILE = "state.json"
DEFAULT_CONTEXT = "default"

logger = get_logger("codestash.state")


class Scope(str, Enum):
    FOLDER = "folder"
    NOTE = "note"


@dataclass
class Context:
    name: str
    collection: str
    folder: str


def normalize_path(relative_path: str) -> str:
    return relative_path.replace("\\", "/")


def _object(value: Any, what: str) -> Dict[str, Any]:
    # null reads as an empty object
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f"decode state: {what} is not an object")
    return value


@dataclass
class State:
    contexts: Dict[str, Context] = field(default_factory=dict)
    current_context: str = ""
    current_scope: Scope = Scope.FOLDER
    current_note_id: str = ""
    current_note_title: str = ""
    files: Dict[str, Dict[str, str]] = field(default_factory=dict)
    path: Optional[Path] = field(default=None, compare=False)

    @staticmethod
    def path_for(root: str) -> Path:
        return Path(root) / STATE_DIR / STATE_FILE

    @classmethod
    def load(cls, root: str) -> "State":
        path = cls.path_for(root)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No state at %s, starting fresh", path)
            return cls(path=path)
        except OSError as exc:
            raise StateIOError(f"read state: {exc}") from exc

        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise DecodeError(f"decode state {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise DecodeError(f"decode state {path}: expected a JSON object")

        st = cls.from_dict(data)
        st.path = path
        return st

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "State":
        contexts: Dict[str, Context] = {}
        for name, raw in _object(data.get("contexts"), "contexts").items():
            raw = _object(raw, f"context {name!r}")
            contexts[name] = Context(
                name=raw.get("name") or name,
                collection=raw.get("collection") or "",
                folder=raw.get("folder") or "",
            )

        files: Dict[str, Dict[str, str]] = {}
        for ctx_name, mapping in _object(data.get("files"), "files").items():
            mapping = _object(mapping, f"files for {ctx_name!r}")
            files[ctx_name] = {
                rel: _object(entry, f"file mapping {rel!r}").get("note_id") or ""
                for rel, entry in mapping.items()
            }

        try:
            scope = Scope(data.get("current_scope") or Scope.FOLDER.value)
        except ValueError as exc:
            raise DecodeError(f"decode state: unknown scope {data.get('current_scope')!r}") from exc

        st = cls(
            contexts=contexts,
            current_context=data.get("current_context") or "",
            current_scope=scope,
            current_note_id=data.get("current_note") or "",
            current_note_title=data.get("current_note_title") or "",
            files=files,
        )
        if st.current_scope != Scope.NOTE:
            st.current_note_id = ""
            st.current_note_title = ""
        return st

    def to_dict(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "contexts": {
                name: {"name": ctx.name, "collection": ctx.collection, "folder": ctx.folder}
                for name, ctx in self.contexts.items()
            },
            "current_context": self.current_context,
            "current_scope": self.scope.value,
        }
        if self.current_note_id:
            doc["current_note"] = self.current_note_id
        if self.current_note_title:
            doc["current_note_title"] = self.current_note_title
        doc["files"] = {
            ctx_name: {rel: {"note_id": note_id} for rel, note_id in mapping.items()}
            for ctx_name, mapping in self.files.items()
        }
        return doc

    def save(self) -> None:
        if self.path is None:
            raise StateIOError("state path is not set")
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")
            os.chmod(self.path, 0o600)
        except OSError as exc:
            raise StateIOError(f"write state: {exc}") from exc
        logger.debug("Saved state to %s", self.path)

    def set_context(self, name: str, collection_id: str, folder_id: str) -> Context:
        name = name.strip() or DEFAULT_CONTEXT
        ctx = Context(name=name, collection=collection_id, folder=folder_id)
        self.contexts[name] = ctx
        if not self.current_context:
            self.current_context = name
        return ctx

    def switch_context(self, name: str) -> None:
        if name not in self.contexts:
            raise NotFound(f"context {name!r} not found", hint="Run `codestash context list` to see available contexts.")
        self.current_context = name
        self.enter_folder_scope()

    def current(self) -> Context:
        ctx = self.contexts.get(self.current_context)
        if ctx is None:
            raise NoActiveContext(
                "no active context",
                hint="Run `codestash init --folder <id> --collection <id>` first.",
            )
        return ctx

    def enter_folder_scope(self) -> None:
        self.current_scope = Scope.FOLDER
        self.current_note_id = ""
        self.current_note_title = ""

    def enter_note_scope(self, note_id: str, title: str = "") -> None:
        note_id = note_id.strip()
        if not note_id:
            raise InvalidArgument("note id is required")
        self.current_scope = Scope.NOTE
        self.current_note_id = note_id
        self.current_note_title = (title or "").strip()

    @property
    def scope(self) -> Scope:
        return self.current_scope or Scope.FOLDER

    def current_note(self) -> Tuple[str, str]:
        if self.scope != Scope.NOTE:
            raise NotInNoteScope("not in note scope", hint="Run `codestash note switch <id>` first.")
        if not self.current_note_id.strip():
            raise NoActiveNote("no active note selected")
        return self.current_note_id, self.current_note_title

    def set_file_mapping(self, ctx_name: str, relative_path: str, note_id: str) -> None:
        self.files.setdefault(ctx_name, {})[normalize_path(relative_path)] = note_id

    def get_file_mapping(self, ctx_name: str, relative_path: str) -> Optional[str]:
        return self.files.get(ctx_name, {}).get(normalize_path(relative_path))
