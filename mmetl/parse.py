"""Reading a Slack export archive and converting its message markup."""

from __future__ import annotations

import json
import logging
import os
import re
import time
import zipfile
from collections.abc import Callable, Iterable
from typing import IO, Any, TypeVar, Union

from mmetl.slack_types import ChannelType, SlackChannel, SlackExport, SlackPost, SlackUser

_T = TypeVar("_T")
_Source = Union[bytes, str, IO[bytes], IO[str]]

_CHANNEL_FILES = {
    "channels.json": ChannelType.OPEN,
    "dms.json": ChannelType.DIRECT,
    "groups.json": ChannelType.PRIVATE,
    "mpims.json": ChannelType.GROUP,
}

# Whitespace as understood by the Slack markup rules: tab, newline, form feed,
# carriage return and space.
_SPACE = r"\t\n\f\r "

_MARKUP_RULES: list[tuple[re.Pattern[str], str]] = [
    # URL
    (re.compile(r"<([^|<>]+)\|([^|<>]+)>"), r"[\2](\1)"),
    # bold
    (re.compile(rf"(^|[{_SPACE}.;,])\*([^{_SPACE}][^*\n]+)\*"), r"\1**\2**"),
    # strikethrough
    (re.compile(rf"(^|[{_SPACE}.;,])~([^{_SPACE}][^~\n]+)~"), r"\1~~\2~~"),
    # single paragraph blockquote; Slack turns ">" into "&gt;"
    (re.compile(r"^&gt;", re.S | re.M), ">"),
]

_MULTI_QUOTE = re.compile(r"^>&gt;&gt;(.+)$", re.S | re.M)
_MULTI_QUOTE_PREFIX = re.compile(r"^(\n)?>&gt;&gt;(.*)")
_LINE_START = re.compile(r"^", re.M)


def _read_text(data: _Source) -> str:
    raw = data if isinstance(data, (bytes, str)) else data.read()
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def _first_json_value(text: str) -> Any:
    stripped = text.lstrip(" \t\n\r")
    if not stripped:
        raise ValueError("unexpected end of JSON input")
    value, _ = json.JSONDecoder().raw_decode(stripped)
    return value


def _as_list(value: Any, what: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"expected a JSON array of {what}, got {type(value).__name__}")
    return value


def parse_users(data: _Source, logger: logging.Logger) -> list[SlackUser]:
    """Read users.json. Raises ValueError when it is not a valid user list."""
    text = _read_text(data)
    logger.debug("SlackParseUsers: Raw json input data: %s", text)

    try:
        users = [SlackUser.from_dict(item) for item in _as_list(json.loads(text), "users")]
    except ValueError as exc:
        logger.warning(
            "Slack Import: Error occurred when parsing some Slack users. "
            "Import may work anyway. err=%s",
            exc,
        )
        raise

    for user in users:
        logger.debug("SlackParseUsers: Parsed user struct data %r", user)

    logger.debug(
        "SlackParseUsers: Marshalled users struct data: %s",
        json.dumps([user.to_dict() for user in users]),
    )
    return users


def parse_channels(
    data: _Source, channel_type: ChannelType, logger: logging.Logger
) -> list[SlackChannel]:
    """Read a channel list, giving every channel the given type."""
    try:
        value = _first_json_value(_read_text(data))
        return [
            SlackChannel.from_dict(item, channel_type) for item in _as_list(value, "channels")
        ]
    except ValueError as exc:
        logger.warning(
            "Slack Import: Error occurred when parsing some Slack channels. "
            "Import may work anyway. err=%s",
            exc,
        )
        raise


def parse_posts(data: _Source, logger: logging.Logger) -> list[SlackPost]:
    """Read one day's post file of a channel."""
    try:
        value = _first_json_value(_read_text(data))
        return [SlackPost.from_dict(item) for item in _as_list(value, "posts")]
    except ValueError as exc:
        logger.warning(
            "Slack Import: Error occurred when parsing some Slack posts. "
            "Import may work anyway. err=%s",
            exc,
        )
        raise


def _replace_mentions(
    patterns: dict[str, re.Pattern[str]],
    posts: dict[str, list[SlackPost]],
    logger: logging.Logger,
    what: str,
) -> None:
    total = len(posts)
    for count, (channel_name, channel_posts) in enumerate(posts.items(), 1):
        logger.debug(
            "Slack Import: converting %s mentions for channel %s. %d of %d",
            what,
            channel_name,
            count,
            total,
        )
        for post in channel_posts:
            for replacement, pattern in patterns.items():
                post.text = pattern.sub(lambda _m, r=replacement: r, post.text)
                for attachment in post.attachments:
                    fallback = attachment.get("fallback")
                    if isinstance(fallback, str):
                        attachment["fallback"] = pattern.sub(
                            lambda _m, r=replacement: r, fallback
                        )


def convert_user_mentions(
    users: Iterable[SlackUser], posts: dict[str, list[SlackPost]], logger: logging.Logger
) -> dict[str, list[SlackPost]]:
    """Rewrite Slack user mentions and special mentions as @name."""
    patterns: dict[str, re.Pattern[str]] = {}
    for user in users:
        try:
            pattern = re.compile(f"<@{user.id}(\\|{user.username})?>")
        except re.error:
            logger.info(
                "Slack Import: Unable to compile the @mention, matching regular expression "
                "for the Slack user. username=%s user_id=%s",
                user.username,
                user.id,
            )
            continue
        patterns["@" + user.username] = pattern

    patterns["@here"] = re.compile("<(!|@)here>")
    patterns["@channel"] = re.compile("<!channel>")
    patterns["@all"] = re.compile("<!everyone>")

    _replace_mentions(patterns, posts, logger, "user")
    logger.info("Slack Import: Converted user mentions")
    return posts


def convert_channel_mentions(
    channels: Iterable[SlackChannel], posts: dict[str, list[SlackPost]], logger: logging.Logger
) -> dict[str, list[SlackPost]]:
    """Rewrite Slack channel mentions as ~name."""
    patterns: dict[str, re.Pattern[str]] = {}
    for channel in channels:
        try:
            pattern = re.compile(f"<#{channel.id}(\\|{channel.name})?>")
        except re.error:
            logger.info(
                "Slack Import: Unable to compile the !channel, matching regular expression "
                "for the Slack channel. channel_id=%s channel_name=%s",
                channel.id,
                channel.name,
            )
            continue
        patterns["~" + channel.name] = pattern

    _replace_mentions(patterns, posts, logger, "channel")
    logger.info("Slack Import: Converted channel mentions")
    return posts


def _convert_multi_quote(match: re.Match[str]) -> str:
    text = _MULTI_QUOTE_PREFIX.sub(r"\1\2", match.group(0), count=1)
    return _LINE_START.sub(">", text)


def _convert_markup(text: str) -> str:
    for pattern, replacement in _MARKUP_RULES:
        text = pattern.sub(replacement, text)
    return _MULTI_QUOTE.sub(_convert_multi_quote, text)


def convert_posts_markup(
    posts: dict[str, list[SlackPost]], logger: logging.Logger
) -> dict[str, list[SlackPost]]:
    """Turn Slack markup (links, bold, strike, quotes) into Markdown."""
    total = len(posts)
    for count, (channel_name, channel_posts) in enumerate(posts.items(), 1):
        logger.debug(
            "Slack Import: converting markdown for channel %s. %d of %d",
            channel_name,
            count,
            total,
        )
        for post in channel_posts:
            post.text = _convert_markup(post.text)

    logger.info("Slack Import: Converted markdown")
    return posts


def _or_empty(parse: Callable[..., list[_T]], *args: Any) -> list[_T]:
    try:
        return parse(*args)
    except ValueError:
        return []


def _read_users(reader: IO[bytes], logger: logging.Logger) -> list[SlackUser]:
    users_path = os.environ.get("USERS_JSON_FILE", "")
    if not users_path:
        return _or_empty(parse_users, reader, logger)
    try:
        with open(users_path, "rb") as users_file:
            return _or_empty(parse_users, users_file, logger)
    except OSError as exc:
        raise OSError(f"failed to read users file from USERS_JSON_FILE: {exc}") from exc


def parse_slack_export_file(
    archive: zipfile.ZipFile,
    team_name: str,
    skip_convert_posts: bool,
    logger: logging.Logger,
) -> SlackExport:
    """Read channels, users, posts and uploads from an export archive.

    Files that cannot be parsed are logged and treated as empty. Unless
    skip_convert_posts is set, mentions and markup in posts are converted.
    """
    export = SlackExport(team_name=team_name, archive=archive)
    infos = archive.infolist()

    for index, info in enumerate(infos, 1):
        name = info.filename
        logger.info("Processing file %d of %d: %s", index, len(infos), name)

        with archive.open(info) as reader:
            channel_type = _CHANNEL_FILES.get(name)
            if channel_type is not None:
                channels = _or_empty(parse_channels, reader, channel_type, logger)
                if channel_type == ChannelType.OPEN:
                    export.public_channels = channels
                elif channel_type == ChannelType.DIRECT:
                    export.direct_channels = channels
                elif channel_type == ChannelType.PRIVATE:
                    export.private_channels = channels
                else:
                    export.group_channels = channels
                export.channels.extend(channels)
            elif name == "users.json":
                export.users = _read_users(reader, logger)
            else:
                parts = name.split("/")
                if len(parts) == 2 and parts[1].endswith(".json"):
                    new_posts = _or_empty(parse_posts, reader, logger)
                    export.posts.setdefault(parts[0], []).extend(new_posts)
                elif len(parts) == 3 and parts[0] == "__uploads":
                    export.uploads[parts[1]] = info

    if not skip_convert_posts:
        logger.info("Converting post mentions and markup")
        start = time.perf_counter()
        export.posts = convert_user_mentions(export.users, export.posts, logger)
        export.posts = convert_channel_mentions(export.channels, export.posts, logger)
        export.posts = convert_posts_markup(export.posts, logger)
        logger.debug("Converting mentions finished (%.3fs)", time.perf_counter() - start)

    return export