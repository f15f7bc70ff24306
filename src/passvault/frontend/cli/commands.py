"""Command-line entry point for PassVault.

    passvault                       start the TUI
    passvault list [--folder NAME] [--type TYPE]
    passvault get NAME [--show] [--copy]
    passvault totp NAME
    passvault generate [--length N] [--no-symbols] [--passphrase [--words N]]
    passvault version

The master password is read from PASSVAULT_MASTER_PASSWORD, or prompted for.
Exit codes: 0 success, 1 error, 2 entry or folder not found.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from typing import List, Optional

import pyperclip

from passvault import __version__
from passvault.core import totp
from passvault.core.exceptions import PassVaultError
from passvault.core.generator import generate_passphrase, generate_password
from passvault.core.models import Entry, EntryType, Vault
from passvault.frontend.cli.context import AppContext, build_context
from passvault.frontend.cli.logging_config import configure_logging

logger = logging.getLogger(__name__)

PASSWORD_ENV = "PASSVAULT_MASTER_PASSWORD"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 2


class NotFound(Exception):
    pass


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="passvault", description="Local encrypted password vault.")
    parser.add_argument("--config", default=None, help="Path to config.yaml (default: ~/.config/passvault/config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")

    sub = parser.add_subparsers(dest="command")

    list_p = sub.add_parser("list", help="List entries")
    list_p.add_argument("--folder", default=None, help="Only entries in this folder (name or path)")
    list_p.add_argument("--type", dest="entry_type", default=None, help="Only entries of this type (login, note, card, identity)")

    get_p = sub.add_parser("get", help="Show one entry")
    get_p.add_argument("name")
    get_p.add_argument("--show", action="store_true", help="Print the password instead of masking it")
    get_p.add_argument("--copy", action="store_true", help="Copy the password to the clipboard")

    totp_p = sub.add_parser("totp", help="Print the current TOTP code of an entry")
    totp_p.add_argument("name")

    gen_p = sub.add_parser("generate", help="Generate a password or passphrase")
    gen_p.add_argument("--length", type=int, default=None, help="Password length (default from config)")
    gen_p.add_argument("--no-symbols", action="store_true", help="Leave out symbols")
    gen_p.add_argument("--passphrase", action="store_true", help="Generate a word-based passphrase")
    gen_p.add_argument("--words", type=int, default=None, help="Number of passphrase words")

    sub.add_parser("version", help="Print the version")
    return parser


def read_master_password() -> str:
    password = os.getenv(PASSWORD_ENV)
    if password:
        return password
    return getpass.getpass("Master password: ")


def _parse_type(value: str) -> EntryType:
    aliases = {"note": EntryType.SECURE_NOTE, "secure-note": EntryType.SECURE_NOTE}
    if value.lower() in aliases:
        return aliases[value.lower()]
    try:
        return EntryType.parse(value)
    except ValueError:
        raise PassVaultError(f"unknown entry type: {value}") from None


def _resolve_folder(vault: Vault, name: str) -> str:
    wanted = name.strip("/").casefold()
    for folder in vault.folders:
        if vault.folder_path(folder.id).casefold() == wanted or folder.name.casefold() == wanted:
            return folder.id
    raise NotFound(f"no folder named '{name}'")


def _find_entry(vault: Vault, name: str) -> Entry:
    matches = vault.find_entries_by_name(name)
    if not matches:
        raise NotFound(f"no entry named '{name}'")
    if len(matches) > 1:
        logger.warning("%d entries named '%s'; using the most recently modified", len(matches), name)
        matches.sort(key=lambda e: e.updated_at, reverse=True)
    return matches[0]


def _unlock(ctx: AppContext) -> Vault:
    if not ctx.session.exists():
        raise NotFound(f"no vault at {ctx.session.path}")
    return ctx.session.unlock(read_master_password())


def cmd_list(ctx: AppContext, args) -> int:
    vault = _unlock(ctx)
    folder_id = _resolve_folder(vault, args.folder) if args.folder else None
    entry_type = _parse_type(args.entry_type) if args.entry_type else None
    entries = vault.search(folder_id=folder_id, entry_type=entry_type)
    for entry in sorted(entries, key=lambda e: e.name.casefold()):
        folder = vault.folder_path(entry.folder_id)
        print(f"{entry.name}\t{entry.type.label}\t{entry.username}\t{folder}")
    return EXIT_OK


def cmd_get(ctx: AppContext, args) -> int:
    vault = _unlock(ctx)
    entry = _find_entry(vault, args.name)
    entry.update_access_time()

    print(f"Name:     {entry.name}")
    print(f"Type:     {entry.type.label}")
    if entry.username:
        print(f"Username: {entry.username}")
    if entry.password:
        print(f"Password: {entry.password if args.show else '********'}")
    if entry.uri:
        print(f"URL:      {entry.uri}")
    if entry.folder_id:
        print(f"Folder:   {vault.folder_path(entry.folder_id)}")
    if entry.notes:
        print(f"Notes:    {entry.notes}")

    if args.copy:
        if not entry.password:
            print("Entry has no password to copy", file=sys.stderr)
            return EXIT_ERROR
        ctx.clipboard.copy(entry.password)
        print("Password copied to clipboard.", file=sys.stderr)
    ctx.session.save()
    return EXIT_OK


def cmd_totp(ctx: AppContext, args) -> int:
    vault = _unlock(ctx)
    entry = _find_entry(vault, args.name)
    if not entry.totp_secret:
        print(f"Entry '{entry.name}' has no TOTP secret", file=sys.stderr)
        return EXIT_ERROR
    code, remaining = totp.config_for_secret(entry.totp_secret).generate_code()
    print(f"{code} ({remaining}s)")
    return EXIT_OK


def cmd_generate(ctx: AppContext, args) -> int:
    if args.passphrase:
        config = ctx.config.passphrase_generator.to_passphrase_config()
        if args.words is not None:
            config.word_count = args.words
        print(generate_passphrase(config))
        return EXIT_OK
    config = ctx.config.password_generator.to_password_config()
    if args.length is not None:
        config.length = args.length
    if args.no_symbols:
        config.include_symbols = False
    print(generate_password(config))
    return EXIT_OK


COMMANDS = {
    "list": cmd_list,
    "get": cmd_get,
    "totp": cmd_totp,
    "generate": cmd_generate,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    if args.command == "version":
        print(f"passvault {__version__}")
        return EXIT_OK

    try:
        ctx = build_context(args.config)
    except PassVaultError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    if args.command is None:
        from passvault.frontend.cli.app import PassVaultApp

        configure_logging(logging.DEBUG if args.verbose else logging.INFO, log_file=ctx.log_file)
        PassVaultApp(ctx=ctx).run()
        return EXIT_OK

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)
    try:
        return COMMANDS[args.command](ctx, args)
    except NotFound as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except (PassVaultError, pyperclip.PyperclipException) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        return EXIT_ERROR
    finally:
        # the clipboard timer is a daemon thread; a CLI process would exit before it fires
        if args.command == "get" and args.copy and ctx.clipboard.pending:
            print(f"Clipboard will be cleared in {ctx.clipboard.timeout}s.", file=sys.stderr)
            _wait_and_clear(ctx)
        ctx.session.lock()


def _wait_and_clear(ctx: AppContext) -> None:
    try:
        ctx.clipboard.wait()
    except KeyboardInterrupt:
        ctx.clipboard.clear()


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
