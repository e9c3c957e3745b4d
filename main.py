"""
main.py – Application entry point.

This file is intentionally minimal.  All logic lives in specialised modules:

  config.py            – AppConfig        : constants, file paths, config I/O, logging
  errors.py            – XPMError & co.   : error kinds and their exit codes
  crypto.py            – KeyManager       : key loading/derivation, Fernet encrypt/decrypt
  generator.py         – PasswordGenerator: random passwords from a class policy
  storage.py           – VaultStore       : SQLite credential vault, Excel export
  file_cipher.py       – FileCipher       : atomic single-file encrypt/decrypt
  directory_cipher.py  – DirectoryCipher  : sequential or parallel tree passes
  results.py           – ResultAggregator : per-file outcome summaries
  activity.py          – ActivityLog      : log of completed actions (xpm-log.db)
  binary_text.py       – encode/decode    : text as binary code points
  auth.py              – AuthManager      : where the user's secret comes from
  cli.py               – argparse front end and coloured output

To run the application:
    python main.py --help

or, once installed:
    xpm --help
"""

import sys

import colorama

from cli import run


def main() -> None:
    """Run the command line and exit with its status code."""
    colorama.just_fix_windows_console()
    sys.exit(run())


if __name__ == "__main__":
    main()
