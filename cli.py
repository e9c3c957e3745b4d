"""
cli.py – Command-line interface (`xpm`).

A thin argparse front end over the application modules:

  generate, generate-key, version     – need no secret.
  add, get, update, delete, list,
  find, count, export                 – open the credential vault.
  encrypt-file, decrypt-file,
  encrypt-dir, decrypt-dir            – file and directory encryption.
  encode, decode                      – text to binary digits and back.
  log show, log clear                 – the activity log.

Completed vault changes and encryptions are also registered in the
activity log (labels and paths only).

Every XPMError that reaches run() is printed and turned into its exit code;
KeyboardInterrupt becomes 130 and anything unexpected is logged with its
traceback and reported as 1. Output is coloured with colorama.
"""

import argparse
import getpass
import logging
import os
import sys
import threading
from typing import Callable, List, Optional

from colorama import Fore, Style

from activity import ActivityLog, LogEntry
from auth import AuthManager
from binary_text import decode, encode
from config import APP_NAME, APP_VERSION, AppConfig
from crypto import KeyManager
from directory_cipher import DirectoryCipher
from errors import EXIT_INTERRUPTED, EXIT_OK, EXIT_UNEXPECTED, IoError, SecretError, XPMError
from file_cipher import FileCipher, Mode
from generator import ALL_CLASSES, DIGITS, HEX, LOWERCASE, SYMBOLS_CLASS, UPPERCASE, PasswordGenerator
from results import Summary
from storage import CredentialSummary, VaultStore

logger = logging.getLogger(APP_NAME)


# ----------------------------------------------------------------------
# Output helpers
# ----------------------------------------------------------------------

def _ok(text: str) -> None:
    print(f"{Fore.GREEN}✓ {text}{Style.RESET_ALL}")


def _info(text: str) -> None:
    print(f"{Fore.BLUE}{text}{Style.RESET_ALL}")


def _warn(text: str) -> None:
    print(f"{Fore.YELLOW}⚠ {text}{Style.RESET_ALL}")


def _error(text: str) -> None:
    print(f"{Fore.RED}✗ {text}{Style.RESET_ALL}", file=sys.stderr)


def _show_key(key_text: str) -> None:
    print(f"\n{Fore.BLUE}Your Key:{Style.RESET_ALL} {Fore.GREEN}{key_text}{Style.RESET_ALL}\n")
    _warn("Keep this key safe; it is not stored anywhere.")


def _print_table(rows: List[CredentialSummary]) -> None:
    if not rows:
        _info("No credentials stored.")
        return
    width = max(len("Label"), *(len(r.label) for r in rows))
    print(f"{Style.BRIGHT}{'Label':<{width}}  {'Created':<32}  Updated{Style.RESET_ALL}")
    for row in rows:
        print(f"{row.label:<{width}}  {row.created_at:<32}  {row.updated_at}")


def _print_log(entries: List[LogEntry]) -> None:
    if not entries:
        _info("The activity log is empty.")
        return
    width = max(len("Id"), *(len(str(e.id)) for e in entries))
    print(f"{Style.BRIGHT}{'Id':>{width}}  {'Created':<19}  Log{Style.RESET_ALL}")
    for entry in entries:
        print(f"{entry.id:>{width}}  {entry.created_at:<19}  {entry.message}")


def _print_summary(summary: Summary, verb: str) -> None:
    colour = Fore.GREEN if summary.failed == 0 else Fore.YELLOW
    print(f"{colour}{verb} {summary.succeeded} of {summary.total} file(s); "
          f"{summary.failed} failed, {summary.cancelled} cancelled, "
          f"{len(summary.skipped)} skipped.{Style.RESET_ALL}")
    for path, reason in summary.failures:
        print(f"  {Fore.RED}{path}{Style.RESET_ALL}: {reason}")


# ----------------------------------------------------------------------
# Shared state of one invocation
# ----------------------------------------------------------------------

class Context:
    """Objects every command handler may need, built from the global options."""

    def __init__(self, args: argparse.Namespace, prompt: Optional[Callable[[str], str]] = None) -> None:
        self.args = args
        self.config = AppConfig(data_dir=args.data_dir, vault_path=args.vault)
        self.keys = KeyManager(self.config)
        self.auth = AuthManager(self.keys, prompt=prompt)
        self.prompt = prompt or getpass.getpass

    def open_vault(self) -> VaultStore:
        is_new = not os.path.exists(self.config.vault_path)
        key = self.auth.acquire(self.args.key, self.args.key_file, confirm=is_new)
        return VaultStore(self.config.vault_path, self.keys, key)

    def file_cipher(self) -> FileCipher:
        limit = self.config.get("max_file_size")
        return FileCipher(self.keys, max_size=int(limit) if limit else None)

    def activity(self) -> ActivityLog:
        return ActivityLog(self.config.activity_log_path)

    def record(self, message: str) -> None:
        """Register a completed action; a broken log only earns a warning."""
        if not self.config.get("activity_log", True):
            return
        try:
            self.activity().register(message)
        except IoError as exc:
            logger.warning("Activity not recorded: %s", exc)
            _warn(f"Activity log not updated: {exc}")

    def generator(self) -> PasswordGenerator:
        return PasswordGenerator(int(self.config.get("max_password_length")))

    def read_password(self, args: argparse.Namespace) -> Optional[str]:
        """The credential secret of add/update: --password, --generate or a prompt."""
        if args.password is not None:
            return args.password
        if args.generate:
            return self.generator().generate(args.length, _classes(args))
        entered = self.prompt("Password to store: ")
        if not entered:
            raise SecretError("the password to store must not be empty")
        return entered


def _classes(args: argparse.Namespace) -> frozenset:
    if args.hex:
        return frozenset({HEX})
    excluded = {
        LOWERCASE: args.no_lowercase,
        UPPERCASE: args.no_uppercase,
        DIGITS: args.no_digits,
        SYMBOLS_CLASS: args.no_symbols,
    }
    return frozenset(name for name in ALL_CLASSES if not excluded[name])


# ----------------------------------------------------------------------
# Command handlers
# ----------------------------------------------------------------------

def cmd_version(ctx: Context) -> int:
    print(f"{APP_NAME} {APP_VERSION}")
    return EXIT_OK


def cmd_generate(ctx: Context) -> int:
    args = ctx.args
    generator = ctx.generator()
    for _ in range(args.count):
        print(generator.generate(args.length, _classes(args)))
    return EXIT_OK


def cmd_generate_key(ctx: Context) -> int:
    _show_key(ctx.keys.generate_key())
    return EXIT_OK


def cmd_add(ctx: Context) -> int:
    store = ctx.open_vault()
    secret = ctx.read_password(ctx.args)
    store.add(ctx.args.label, secret)
    ctx.record(f"add password '{ctx.args.label}'")
    _ok(f"Saved '{ctx.args.label}'.")
    if ctx.args.generate and ctx.args.password is None:
        print(secret)
    return EXIT_OK


def cmd_get(ctx: Context) -> int:
    store = ctx.open_vault()
    credential = store.get(ctx.args.label)
    print(store.reveal(credential))
    return EXIT_OK


def cmd_update(ctx: Context) -> int:
    args = ctx.args
    store = ctx.open_vault()
    secret = None
    if args.password is not None or args.generate or not args.rename:
        secret = ctx.read_password(args)
    store.update(args.label, new_secret=secret, new_label=args.rename)
    if args.rename:
        ctx.record(f"rename password '{args.label}' to '{args.rename}'")
    if secret is not None:
        ctx.record(f"update password '{args.rename or args.label}'")
    _ok(f"Updated '{args.rename or args.label}'.")
    if args.generate and args.password is None:
        print(secret)
    return EXIT_OK


def cmd_delete(ctx: Context) -> int:
    store = ctx.open_vault()
    store.delete(ctx.args.label)
    ctx.record(f"delete password '{ctx.args.label}'")
    _ok(f"Deleted '{ctx.args.label}'.")
    return EXIT_OK


def cmd_list(ctx: Context) -> int:
    _print_table(ctx.open_vault().list())
    return EXIT_OK


def cmd_find(ctx: Context) -> int:
    _print_table(ctx.open_vault().find(ctx.args.text))
    return EXIT_OK


def cmd_count(ctx: Context) -> int:
    print(ctx.open_vault().count())
    return EXIT_OK


def cmd_export(ctx: Context) -> int:
    count = ctx.open_vault().export_summaries(ctx.args.output)
    ctx.record(f"export {count} password label(s) to '{os.path.abspath(ctx.args.output)}'")
    _ok(f"Exported {count} credential(s) to {ctx.args.output}.")
    return EXIT_OK


def _record_file(ctx: Context, mode: Mode, source: str) -> None:
    ctx.record(f"{mode.value} file at '{os.path.abspath(source)}'")
    if ctx.args.wipe and not os.path.exists(source):
        ctx.record(f"file '{os.path.abspath(source)}' wiped")


def cmd_encrypt_file(ctx: Context) -> int:
    args = ctx.args
    key, generated = ctx.auth.acquire_or_generate(args.key, args.key_file, generate=args.new_key)
    destination = ctx.file_cipher().encrypt_file(args.path, key, args.output, remove_source=args.wipe)
    _record_file(ctx, Mode.ENCRYPT, args.path)
    _ok(f"Encrypted {args.path} -> {destination}")
    if generated:
        _show_key(generated)
    return EXIT_OK


def cmd_decrypt_file(ctx: Context) -> int:
    args = ctx.args
    key = ctx.auth.acquire(args.key, args.key_file)
    destination = ctx.file_cipher().decrypt_file(args.path, key, args.output, remove_source=args.wipe)
    _record_file(ctx, Mode.DECRYPT, args.path)
    _ok(f"Decrypted {args.path} -> {destination}")
    return EXIT_OK


def _run_directory(ctx: Context, mode: Mode) -> int:
    args = ctx.args
    generated = None
    if mode is Mode.ENCRYPT:
        key, generated = ctx.auth.acquire_or_generate(args.key, args.key_file, generate=args.new_key)
    else:
        key = ctx.auth.acquire(args.key, args.key_file)

    cipher = DirectoryCipher(
        ctx.file_cipher(),
        workers=args.workers or ctx.config.workers,
        parallel=bool(ctx.config.get("parallel", True)) and not args.sequential,
        excluded=ctx.config.protected_paths() + list(args.exclude),
        families=ctx.config.protected_families(),
    )
    cancel = threading.Event()
    try:
        summary = cipher.run(args.path, mode, key, cancel)
    finally:
        if generated:
            _show_key(generated)
    ctx.record(f"{mode.value} directory at '{os.path.abspath(args.path)}' "
               f"({summary.succeeded} ok, {summary.failed} failed)")
    _print_summary(summary, "Encrypted" if mode is Mode.ENCRYPT else "Decrypted")
    return EXIT_OK


def cmd_encrypt_dir(ctx: Context) -> int:
    return _run_directory(ctx, Mode.ENCRYPT)


def cmd_decrypt_dir(ctx: Context) -> int:
    return _run_directory(ctx, Mode.DECRYPT)


def cmd_encode(ctx: Context) -> int:
    _info("The encode:")
    print(encode(ctx.args.text))
    return EXIT_OK


def cmd_decode(ctx: Context) -> int:
    decoded = decode(ctx.args.bits)
    _info("The decode:")
    print(decoded)
    return EXIT_OK


def cmd_log_show(ctx: Context) -> int:
    _print_log(ctx.activity().entries(ctx.args.last))
    return EXIT_OK


def cmd_log_clear(ctx: Context) -> int:
    removed = ctx.activity().clear()
    _ok(f"Removed {removed} log entr{'y' if removed == 1 else 'ies'}.")
    return EXIT_OK


# ----------------------------------------------------------------------
# Parser
# ----------------------------------------------------------------------

def _add_policy_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-l", "--length", type=int, help="password length (default: random 32-72)")
    parser.add_argument("--no-lowercase", action="store_true", help="leave out a-z")
    parser.add_argument("--no-uppercase", action="store_true", help="leave out A-Z")
    parser.add_argument("--no-digits", action="store_true", help="leave out 0-9")
    parser.add_argument("--no-symbols", action="store_true", help="leave out symbols")
    parser.add_argument("--hex", action="store_true", help="use only 0-9 and A-F (ignores --no-*)")


def _add_secret_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("-p", "--password", help="password to store (prompted when omitted)")
    group.add_argument("-g", "--generate", action="store_true", help="store a generated password")
    _add_policy_options(parser)


MEMORY_NOTE = (
    "Each file is encrypted whole in memory; at the peak a file needs about\n"
    "three times its size, once per worker in a directory pass. Files larger\n"
    "than max_file_size in config.json (default 256 MiB) are refused."
)


def _add_directory_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("path", help="directory to process in place")
    parser.add_argument("--sequential", action="store_true", help="process files one at a time")
    parser.add_argument("--workers", type=int, help="worker pool size (default: CPU count)")
    parser.add_argument("--exclude", action="append", default=[], metavar="PATH",
                        help="path to leave untouched (repeatable)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xpm",
        description="XPManager - password vault and file encryption",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Store a generated password:
    %(prog)s add github --generate

  Show it again:
    %(prog)s get github

  Encrypt a folder in place with a new key:
    %(prog)s encrypt-dir ./secrets --new-key
        """,
    )
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("--vault", help="vault database file")
    parser.add_argument("--data-dir", help="directory for settings, salt and log")
    parser.add_argument("-k", "--key", help="key or passphrase (default: $XPM_KEY or a prompt)")
    parser.add_argument("--key-file", help="read the key or passphrase from a file")
    parser.add_argument("-v", "--verbose", action="store_true", help="log to stderr")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("version", help="show the version")
    p.set_defaults(handler=cmd_version)

    p = sub.add_parser("generate", help="generate random passwords")
    _add_policy_options(p)
    p.add_argument("-n", "--count", type=int, default=1, help="how many passwords")
    p.set_defaults(handler=cmd_generate)

    p = sub.add_parser("generate-key", help="generate a new encryption key")
    p.set_defaults(handler=cmd_generate_key)

    p = sub.add_parser("add", help="store a new password")
    p.add_argument("label")
    _add_secret_options(p)
    p.set_defaults(handler=cmd_add)

    p = sub.add_parser("get", help="show a stored password")
    p.add_argument("label")
    p.set_defaults(handler=cmd_get)

    p = sub.add_parser("update", help="change a stored password and/or its label")
    p.add_argument("label")
    p.add_argument("--rename", metavar="NEW_LABEL", help="new label")
    _add_secret_options(p)
    p.set_defaults(handler=cmd_update)

    p = sub.add_parser("delete", help="remove a stored password")
    p.add_argument("label")
    p.set_defaults(handler=cmd_delete)

    p = sub.add_parser("list", help="list stored labels")
    p.set_defaults(handler=cmd_list)

    p = sub.add_parser("find", help="search labels (case-insensitive)")
    p.add_argument("text")
    p.set_defaults(handler=cmd_find)

    p = sub.add_parser("count", help="number of stored passwords")
    p.set_defaults(handler=cmd_count)

    p = sub.add_parser("export", help="export labels and dates to Excel")
    p.add_argument("output", help="target .xlsx file")
    p.set_defaults(handler=cmd_export)

    p = sub.add_parser("encrypt-file", help="encrypt one file", epilog=MEMORY_NOTE,
                       formatter_class=argparse.RawDescriptionHelpFormatter)
    p.add_argument("path")
    p.add_argument("-o", "--output", help="write here instead of in place")
    p.add_argument("--new-key", action="store_true", help="encrypt with a newly generated key")
    p.add_argument("--wipe", action="store_true", help="overwrite and delete the source (with -o)")
    p.set_defaults(handler=cmd_encrypt_file)

    p = sub.add_parser("decrypt-file", help="decrypt one file", epilog=MEMORY_NOTE,
                       formatter_class=argparse.RawDescriptionHelpFormatter)
    p.add_argument("path")
    p.add_argument("-o", "--output", help="write here instead of in place")
    p.add_argument("--wipe", action="store_true", help="overwrite and delete the source (with -o)")
    p.set_defaults(handler=cmd_decrypt_file)

    p = sub.add_parser("encrypt-dir", help="encrypt every file under a directory", epilog=MEMORY_NOTE,
                       formatter_class=argparse.RawDescriptionHelpFormatter)
    _add_directory_options(p)
    p.add_argument("--new-key", action="store_true", help="encrypt with a newly generated key")
    p.set_defaults(handler=cmd_encrypt_dir)

    p = sub.add_parser("decrypt-dir", help="decrypt every file under a directory", epilog=MEMORY_NOTE,
                       formatter_class=argparse.RawDescriptionHelpFormatter)
    _add_directory_options(p)
    p.set_defaults(handler=cmd_decrypt_dir)

    p = sub.add_parser("encode", help="write text as binary code points")
    p.add_argument("text")
    p.set_defaults(handler=cmd_encode)

    p = sub.add_parser("decode", help="turn binary code points back into text")
    p.add_argument("bits", help="space-separated binary numbers, e.g. \"1111000 1110000\"")
    p.set_defaults(handler=cmd_decode)

    p = sub.add_parser("log", help="show or clear the activity log")
    p.set_defaults(handler=cmd_log_show, last=None)
    log_sub = p.add_subparsers(dest="log_command", metavar="ACTION")
    q = log_sub.add_parser("show", help="list logged actions, oldest first")
    q.add_argument("-n", "--last", type=int, metavar="N", help="only the N most recent entries")
    q.set_defaults(handler=cmd_log_show)
    q = log_sub.add_parser("clear", help="delete every logged action")
    q.set_defaults(handler=cmd_log_clear)

    return parser


# ----------------------------------------------------------------------
# Entry
# ----------------------------------------------------------------------

def run(argv: Optional[List[str]] = None, prompt: Optional[Callable[[str], str]] = None) -> int:
    """Parse *argv*, run the command and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return EXIT_OK

    stderr_handler = None
    if args.verbose:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.DEBUG)
        stderr_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logger.addHandler(stderr_handler)

    try:
        ctx = Context(args, prompt=prompt)
        logger.debug("Running command %s", args.command)
        return args.handler(ctx)
    except XPMError as exc:
        _error(str(exc))
        logger.info("Command %s failed: %s", args.command, exc.kind)
        return exc.exit_code
    except KeyboardInterrupt:
        _error("Interrupted.")
        return EXIT_INTERRUPTED
    except Exception as exc:
        logger.exception("Unexpected error in command %s", args.command)
        _error(f"Unexpected error: {exc}")
        return EXIT_UNEXPECTED
    finally:
        if stderr_handler is not None:
            logger.removeHandler(stderr_handler)
