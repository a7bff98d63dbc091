import argparse
import os
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .api import create_note, filter_notes_by_folder, list_notes, update_note
from .client import NotesClient
from .config import Config, load_config
from .device_flow import DeviceLogin
from .errors import CodestashError, InvalidArgument, NotFound, NotLoggedIn, StateIOError, WrongScope
from .models import Credential, NoteDraft, NoteSummary, NoteUpdate
from .state import DEFAULT_CONTEXT, Scope, State
from .token_store import load_credential
from .utils import get_logger, set_debug, shorten

logger = get_logger('codestash.cli')


def _split_tags(value: str) -> List[str]:
    return [tag.strip() for tag in value.split(',') if tag.strip()]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='codestash')
    p.add_argument('--root', default='.', help='project root for codestash state')
    p.add_argument('--config', help='path to a JSON config file')
    p.add_argument('--debug', action='store_true')
    sub = p.add_subparsers(dest='cmd', required=True)

    sub.add_parser('login', help='authenticate via device authorization')

    init = sub.add_parser('init', help='bind a context to a collection and folder')
    init.add_argument('--folder', required=True)
    init.add_argument('--collection', required=True)
    init.add_argument('--context', default=DEFAULT_CONTEXT)

    context = sub.add_parser('context')
    context_sub = context.add_subparsers(dest='context_cmd', required=True)
    context_sub.add_parser('list')
    context_switch = context_sub.add_parser('switch')
    context_switch.add_argument('name')

    note = sub.add_parser('note')
    note_sub = note.add_subparsers(dest='note_cmd', required=True)
    note_switch = note_sub.add_parser('switch')
    note_switch.add_argument('note_id')
    note_sub.add_parser('exit')

    notes = sub.add_parser('notes')
    notes_sub = notes.add_subparsers(dest='notes_cmd', required=True)

    create = notes_sub.add_parser('create')
    create.add_argument('--file', required=True, help='path to code file')
    create.add_argument('--title', required=True)
    create.add_argument('--language', default='')
    create.add_argument('--tags', type=_split_tags, default=None, help='comma-separated tags')
    create.add_argument('--note', help='path to note/description file')

    notes_sub.add_parser('list')

    update = notes_sub.add_parser('update')
    update.add_argument('--file', required=True, help='path to code file')
    update.add_argument('--title')
    update.add_argument('--language')
    update.add_argument('--tags', type=_split_tags, default=None, help='comma-separated tags')
    update.add_argument('--note', help='path to note/description file')

    sub.add_parser('status')

    return p


def build_client(cfg: Config) -> NotesClient:
    return NotesClient(cfg.api_base_url, cfg.client_id, cfg.client_secret, timeout=cfg.timeout)


def _require_scope(st: State, scope: Scope) -> None:
    if st.scope == scope:
        return
    if scope == Scope.FOLDER:
        raise WrongScope(
            "this command is only available in folder scope",
            hint="Run `codestash note exit` to leave the current note.",
        )
    raise WrongScope(
        "this command is only available in note scope",
        hint="Run `codestash note switch <id>` first.",
    )


def _require_credential(cfg: Config) -> Credential:
    credential = load_credential(cfg.token_path)
    if credential is None:
        raise NotLoggedIn("not logged in", hint="Run `codestash login` first.")
    return credential


def _read_text(path: str, what: str) -> str:
    try:
        return Path(path).read_text(encoding='utf-8')
    except OSError as exc:
        raise StateIOError(f"read {what}: {exc}") from exc


def _relative_to_root(root: Path, abs_path: Path) -> str:
    try:
        rel = os.path.relpath(abs_path, root)
    except ValueError:
        rel = str(abs_path)
    return rel.replace(os.sep, '/')


def _print_notes_table(notes: List[NoteSummary]) -> None:
    print(f"{'ID':<36}  {'Title':<30}  {'Updated':<19}")
    print('-' * 90)
    for item in notes:
        updated = item.updated_at.isoformat() if item.updated_at else ''
        print(f"{item.id:<36}  {shorten(item.title, 30):<30}  {updated:<19}")


def cmd_login(args: argparse.Namespace, st: State, cfg: Config) -> int:
    with build_client(cfg) as client:
        DeviceLogin(client, cfg.token_path).run()
    print(f"\nLogin successful! Token saved to {cfg.token_path}")
    return 0


def cmd_init(args: argparse.Namespace, st: State, cfg: Config) -> int:
    if not args.folder.strip():
        raise InvalidArgument("folder id is required (use --folder)")
    if not args.collection.strip():
        raise InvalidArgument("collection id is required (use --collection)")

    ctx = st.set_context(args.context, args.collection, args.folder)
    st.current_context = ctx.name
    st.save()
    print(f'Initialized context "{ctx.name}" with folder {ctx.folder}')
    return 0


def cmd_context_list(args: argparse.Namespace, st: State, cfg: Config) -> int:
    if not st.contexts:
        print("No contexts defined. Run `codestash init --folder <id>` to create one.")
        return 0
    for name in sorted(st.contexts):
        ctx = st.contexts[name]
        marker = '*' if name == st.current_context else ' '
        print(f"{marker} {name} (collection: {ctx.collection}, folder: {ctx.folder})")
    return 0


def cmd_context_switch(args: argparse.Namespace, st: State, cfg: Config) -> int:
    _require_scope(st, Scope.FOLDER)
    st.switch_context(args.name)
    st.save()
    print(f'Switched to context "{args.name}"')
    return 0


def cmd_note_switch(args: argparse.Namespace, st: State, cfg: Config) -> int:
    note_id = args.note_id.strip()
    if not note_id:
        raise InvalidArgument("note id is required")
    ctx = st.current()
    credential = _require_credential(cfg)

    with build_client(cfg) as client:
        notes = filter_notes_by_folder(list_notes(client, credential.access_token, ctx.collection), ctx.folder)

    selected = next((n for n in notes if n.id == note_id), None)
    if selected is None:
        raise NotFound(f"note {note_id} not found in current folder")

    st.enter_note_scope(selected.id, selected.title)
    st.save()
    print(f"Switched to note {selected.title} ({selected.id})")
    return 0


def cmd_note_exit(args: argparse.Namespace, st: State, cfg: Config) -> int:
    if st.scope != Scope.NOTE:
        print("Already in folder scope.")
        return 0
    st.enter_folder_scope()
    st.save()
    print("Exited note scope.")
    return 0


def cmd_notes_create(args: argparse.Namespace, st: State, cfg: Config) -> int:
    _require_scope(st, Scope.FOLDER)
    if not args.file.strip():
        raise InvalidArgument("--file is required")
    if not args.title.strip():
        raise InvalidArgument("--title is required")
    ctx = st.current()

    abs_file = Path(args.file).resolve()
    code = _read_text(str(abs_file), 'file')
    note_body = _read_text(args.note, 'note body') if args.note and args.note.strip() else ''
    credential = _require_credential(cfg)

    draft = NoteDraft(
        collection_id=ctx.collection,
        folder_id=ctx.folder,
        title=args.title,
        language=args.language,
        tags=args.tags or [],
        code=code,
        note=note_body,
    )
    with build_client(cfg) as client:
        note_id = create_note(client, credential.access_token, draft)

    if not note_id:
        print("Note created, but the server did not return an ID. Skipping local mapping.")
        return 0

    root = Path(args.root).resolve()
    st.set_file_mapping(ctx.name, _relative_to_root(root, abs_file), note_id)
    st.save()
    print(f'Created note "{args.title}" (ID: {note_id})')
    return 0


def cmd_notes_list(args: argparse.Namespace, st: State, cfg: Config) -> int:
    ctx = st.current()
    credential = _require_credential(cfg)

    with build_client(cfg) as client:
        notes = filter_notes_by_folder(list_notes(client, credential.access_token, ctx.collection), ctx.folder)

    if not notes:
        print("No notes found for this folder.")
        return 0
    _print_notes_table(notes)
    return 0


def cmd_notes_update(args: argparse.Namespace, st: State, cfg: Config) -> int:
    _require_scope(st, Scope.NOTE)
    if not args.file.strip():
        raise InvalidArgument("--file is required")
    note_id, note_title = st.current_note()

    update = NoteUpdate(code=_read_text(args.file, 'file'))
    if args.note and args.note.strip():
        update.note = _read_text(args.note, 'note body')
    if args.title is not None:
        if not args.title.strip():
            raise InvalidArgument("--title cannot be empty when provided")
        update.title = args.title.strip()
    if args.language is not None:
        if not args.language.strip():
            raise InvalidArgument("--language cannot be empty when provided")
        update.language = args.language.strip()
    if args.tags is not None:
        update.tags = args.tags
    credential = _require_credential(cfg)

    with build_client(cfg) as client:
        update_note(client, credential.access_token, note_id, update)

    target = f"{note_title} ({note_id})" if note_title else note_id
    print(f"Updated note {target}")
    return 0


def cmd_status(args: argparse.Namespace, st: State, cfg: Config) -> int:
    ctx = st.current()
    scope = st.scope

    print(f"Context: {ctx.name} (collection: {ctx.collection}, folder: {ctx.folder})")
    print(f"Scope: {scope.value}")

    if scope == Scope.NOTE:
        note_id, note_title = st.current_note()
        print(f"Note: {note_title} ({note_id})" if note_title else f"Note: {note_id}")
        print("Available commands: notes update, note exit, notes list, status")
    else:
        print("Note: <none>")
        print("Available commands: notes create, notes list, note switch, context switch, status")

    credential = load_credential(cfg.token_path)
    if credential is None:
        print("Login: not logged in")
    elif credential.is_expired():
        print(f"Login: expired at {credential.expires_at.isoformat()}")
    else:
        print(f"Login: valid until {credential.expires_at.isoformat()}")
    return 0


Handler = Callable[[argparse.Namespace, State, Config], int]

COMMANDS: Dict[tuple, Handler] = {
    ('login', None): cmd_login,
    ('init', None): cmd_init,
    ('context', 'list'): cmd_context_list,
    ('context', 'switch'): cmd_context_switch,
    ('note', 'switch'): cmd_note_switch,
    ('note', 'exit'): cmd_note_exit,
    ('notes', 'create'): cmd_notes_create,
    ('notes', 'list'): cmd_notes_list,
    ('notes', 'update'): cmd_notes_update,
    ('status', None): cmd_status,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.debug:
        set_debug(True)

    sub_cmd = getattr(args, f'{args.cmd}_cmd', None)
    handler = COMMANDS[(args.cmd, sub_cmd)]

    try:
        cfg = load_config(args.config)
        st = State.load(str(Path(args.root).resolve()))
        logger.debug('Running %s %s (root=%s)', args.cmd, sub_cmd or '', args.root)
        return handler(args, st, cfg)
    except CodestashError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        if exc.hint:
            print(exc.hint, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return 130


if __name__ == '__main__':
    raise SystemExit(main())
