"""Command line interface: check and transform Slack exports."""

from __future__ import annotations

import argparse
import json
import logging
import os
import zipfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime

from mmetl.download import DownloadError
from mmetl.intermediate import MissingEmailError
from mmetl.transformer import Transformer

VERSION = "0.1.0"
BUILD_HASH = "dev mode"

ATTACHMENTS_INTERNAL = "bulk-export-attachments"
TRANSFORM_LOG_FILE = "transform-slack.log"
CHECK_LOG_FILE = "check-slack.log"

_EMAIL_DOMAIN_HELP = (
    "If this flag is provided: When a user's email address is empty, the output's email "
    "address will be generated from their username and the provided domain."
)
_SKIP_EMPTY_EMAILS_HELP = (
    "Ignore empty email addresses from the import file. Note that this results in invalid data."
)


class CommandError(Exception):
    """A command was given arguments it cannot work with."""


class _JsonFormatter(logging.Formatter):
    """One JSON object per record, naming the file and line it came from."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "file": f"{record.filename}:{record.lineno}",
            "level": record.levelname.lower(),
            "msg": record.getMessage(),
            "time": datetime.fromtimestamp(record.created).astimezone().isoformat(
                timespec="seconds"
            ),
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


@contextmanager
def _file_logger(name: str, path: str, mode: str, debug: bool) -> Iterator[logging.Logger]:
    handler = logging.FileHandler(path, mode=mode, encoding="utf-8")
    handler.setFormatter(_JsonFormatter())
    logger = logging.getLogger(f"mmetl.run.{name}")
    logger.propagate = False
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.addHandler(handler)
    try:
        if debug:
            logger.info("Debug mode enabled")
        yield logger
    finally:
        logger.removeHandler(handler)
        handler.close()


def _prepare_output(output_path: str) -> None:
    if os.path.isdir(output_path):
        raise CommandError(f'Output file "{output_path}" is a directory')


def _prepare_attachments_dir(attachments_dir: str) -> None:
    full_dir = os.path.join(attachments_dir, ATTACHMENTS_INTERNAL)
    if not os.path.exists(full_dir):
        os.makedirs(full_dir, mode=0o755, exist_ok=True)
    elif not os.path.isdir(full_dir):
        raise CommandError(f'File "{attachments_dir}" is not a directory')


def _transform_slack(args: argparse.Namespace) -> None:
    _prepare_output(args.output)
    if not args.skip_attachments:
        _prepare_attachments_dir(args.attachments_dir)

    with zipfile.ZipFile(args.file) as archive, _file_logger(
        "transform", TRANSFORM_LOG_FILE, "w", args.debug
    ) as logger:
        transformer = Transformer(args.team, logger)
        slack_export = transformer.parse_slack_export_file(archive, args.skip_convert_posts)
        transformer.transform(
            slack_export,
            args.attachments_dir,
            args.skip_attachments,
            args.discard_invalid_props,
            args.allow_download,
            args.skip_empty_emails,
            args.default_email_domain,
        )
        transformer.export(args.output)
        logger.info("Transformation succeeded!")


def _check_slack(args: argparse.Namespace) -> None:
    with zipfile.ZipFile(args.file) as archive, _file_logger(
        "check", CHECK_LOG_FILE, "a", args.debug
    ) as logger:
        transformer = Transformer("test", logger)
        if not transformer.precheck(archive):
            return
        slack_export = transformer.parse_slack_export_file(archive, True)
        transformer.transform(
            slack_export,
            "",
            True,
            True,
            False,
            args.skip_empty_emails,
            args.default_email_domain,
        )
        transformer.check_intermediate()


def _build_parser() -> tuple[argparse.ArgumentParser, dict[str, argparse.ArgumentParser]]:
    parser = argparse.ArgumentParser(
        prog="mmetl",
        description=(
            "ETL tool to transform the export files from different providers to be "
            "compatible with Mattermost."
        ),
    )
    commands = parser.add_subparsers(dest="command")

    check = commands.add_parser(
        "check",
        help="Checks the integrity of export files.",
        description="Checks the integrity and entities of export files from different providers.",
    )
    check_providers = check.add_subparsers(dest="provider")
    check_slack = check_providers.add_parser(
        "slack", help="Checks the integrity of a Slack export."
    )
    check_slack.add_argument("-f", "--file", required=True, help="the Slack export file to transform")
    check_slack.add_argument(
        "--debug",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Whether to show debug logs or not",
    )
    check_slack.add_argument(
        "--skip-empty-emails", action="store_true", help=_SKIP_EMPTY_EMAILS_HELP
    )
    check_slack.add_argument("--default-email-domain", default="", help=_EMAIL_DOMAIN_HELP)

    transform = commands.add_parser(
        "transform", help="Transforms export files into Mattermost import files"
    )
    transform_providers = transform.add_subparsers(dest="provider")
    transform_slack = transform_providers.add_parser(
        "slack",
        help="Transforms a Slack export.",
        description="Transforms a Slack export zipfile into a Mattermost export JSONL file.",
        epilog="example: transform slack --team myteam --file my_export.zip --output mm_export.json",
    )
    transform_slack.add_argument(
        "-t", "--team", required=True, help="an existing team in Mattermost to import the data into"
    )
    transform_slack.add_argument(
        "-f", "--file", required=True, help="the Slack export file to transform"
    )
    transform_slack.add_argument("-o", "--output", default="bulk-export.jsonl", help="the output path")
    transform_slack.add_argument(
        "-d", "--attachments-dir", default="data", help="the path for the attachments directory"
    )
    transform_slack.add_argument(
        "-c",
        "--skip-convert-posts",
        action="store_true",
        help="Skips converting mentions and post markup. Only for testing purposes",
    )
    transform_slack.add_argument(
        "-a",
        "--skip-attachments",
        action="store_true",
        help="Skips copying the attachments from the import file",
    )
    transform_slack.add_argument(
        "--skip-empty-emails", action="store_true", help=_SKIP_EMPTY_EMAILS_HELP
    )
    transform_slack.add_argument("--default-email-domain", default="", help=_EMAIL_DOMAIN_HELP)
    transform_slack.add_argument(
        "-l",
        "--allow-download",
        action="store_true",
        help="Allows downloading the attachments for the import file",
    )
    transform_slack.add_argument(
        "-p",
        "--discard-invalid-props",
        action="store_true",
        help="Skips converting posts with invalid props instead discarding the props themselves",
    )
    transform_slack.add_argument(
        "--debug", action="store_true", help="Whether to show debug logs or not"
    )

    commands.add_parser("version", help="Prints the version of mmetl.")

    return parser, {"check": check, "transform": transform}


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; returns the exit status."""
    parser, groups = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "version":
        print(f"mmetl {VERSION} -- {BUILD_HASH}")
        return 0
    if args.provider is None:
        groups[args.command].print_help()
        return 0

    handler = _check_slack if args.command == "check" else _transform_slack
    try:
        handler(args)
    except (
        CommandError,
        MissingEmailError,
        DownloadError,
        zipfile.BadZipFile,
        OSError,
        ValueError,
    ) as exc:
        print(exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())