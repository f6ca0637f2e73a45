"""Pre-flight check for a gateway ``.env`` file.

Run it before (re)starting the service:

* ``check``  loads ``AppSettings`` from the file, lists the provider shims the
  credentials enable and flags providers that are only half configured.
* ``record`` does the same and stores a SHA256 baseline of the file.
* ``verify`` does the same and compares the file against that baseline, so an
  unexpected edit to secrets or callback URLs is caught.

Example::

    python -m scripts.check_env record --env-file /opt/dsu/.env \
        --hash-file /opt/dsu/.env.sha256
    python -m scripts.check_env verify --env-file /opt/dsu/.env \
        --hash-file /opt/dsu/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Dict, List, Tuple

from pydantic import ValidationError

from dsu.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5

# provider domain -> (settings attribute, credential field names)
PROVIDER_CREDENTIALS: Dict[str, Tuple[str, Tuple[str, str]]] = {
    "fitbit": ("fitbit", ("client_id", "client_secret")),
    "withings": ("withings", ("client_id", "client_secret")),
    "twonet": ("twonet", ("key", "secret")),
}


def _checksum(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def load_settings(env_file: Path) -> AppSettings:
    """Populate the environment from ``env_file`` and build the settings from it."""
    if not env_file.exists():
        raise FileNotFoundError(
            f"Environment file {env_file} does not exist; "
            "create it or pass --env-file."
        )
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def enabled_domains(settings: AppSettings) -> List[str]:
    """Provider domains whose credentials are fully configured."""
    return [
        domain
        for domain, (attribute, _) in PROVIDER_CREDENTIALS.items()
        if getattr(settings, attribute).configured
    ]


def partially_configured(settings: AppSettings) -> List[str]:
    """Providers with some but not all of their credentials set."""
    partial = []
    for domain, (attribute, fields) in PROVIDER_CREDENTIALS.items():
        group = getattr(settings, attribute)
        present = [bool(getattr(group, name)) for name in fields]
        if any(present) and not all(present):
            partial.append(domain)
    return partial


def _report(settings: AppSettings) -> None:
    domains = enabled_domains(settings)
    if domains:
        print(f"Enabled shims: {', '.join(domains)}")
    else:
        print("No provider credentials configured; only first-party data will be served.")
    for domain in partially_configured(settings):
        print(
            f"Warning: {domain} is only partially configured and will stay disabled.",
            file=sys.stderr,
        )
    print(f"Provider callback URL: {settings.oauth.callback_url}")


def _record(env_file: Path, hash_file: Path) -> int:
    checksum = _checksum(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"No baseline at {hash_file}; run the 'record' command first.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _checksum(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Review the changed secrets and callback URLs before restarting the gateway.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


_COMMANDS = {
    "check": ("Validate settings and list enabled shims.", False),
    "record": ("Validate settings and store the checksum baseline.", True),
    "verify": ("Validate settings and compare against the checksum baseline.", True),
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate gateway settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, (help_text, needs_hash_file) in _COMMANDS.items():
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the working directory).",
        )
        if needs_hash_file:
            subparser.add_argument(
                "--hash-file",
                required=True,
                type=Path,
                help="Location of the checksum baseline.",
            )
    return parser


def main(argv: List[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    try:
        settings = load_settings(env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    _report(settings)

    if args.command == "record":
        return _record(env_file, args.hash_file)
    if args.command == "verify":
        return _verify(env_file, args.hash_file)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
