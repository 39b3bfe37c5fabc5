"""Building and writing the lines of a bulk import file."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Sequence
from typing import IO, Any

from mmetl.intermediate import (
    Intermediate,
    IntermediateChannel,
    IntermediatePost,
    IntermediateReaction,
    IntermediateUser,
)
from mmetl.slack_types import ChannelType, SlackChannel

POST_MAX_ATTACHMENTS = 5
CHANNEL_USER_ROLE = "channel_user"
SYSTEM_USER_ROLE = "system_user"
TEAM_USER_ROLE = "team_user"

_log = logging.getLogger(__name__)

_HTML_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


def split_channels_by_member_size(
    channels: Iterable[SlackChannel], limit: int
) -> tuple[list[SlackChannel], list[SlackChannel]]:
    """Split channels into those with at most limit members and those with more.

    Channels with a single member are left out of both lists.
    """
    regular: list[SlackChannel] = []
    big: list[SlackChannel] = []
    for channel in channels:
        if len(channel.members) == 1:
            _log.info(
                "Bulk export for direct channels containing a single member is not "
                "supported. Not importing channel %s",
                channel.name,
            )
        elif len(channel.members) > limit:
            big.append(channel)
        else:
            regular.append(channel)
    return regular, big


def get_import_line_from_channel(team: str, channel: IntermediateChannel) -> dict[str, Any]:
    """Return the import line of a public or private channel."""
    return {
        "type": "channel",
        "channel": {
            "team": team,
            "name": channel.name,
            "display_name": channel.display_name,
            "type": ChannelType(channel.type).value,
            "header": channel.header,
            "purpose": channel.purpose,
        },
    }


def get_import_line_from_direct_channel(
    team: str, channel: IntermediateChannel
) -> dict[str, Any]:
    """Return the import line of a direct or group channel."""
    return {
        "type": "direct_channel",
        "direct_channel": {
            "members": list(channel.members_usernames),
            "favorited_by": None,
            "header": channel.topic,
        },
    }


def get_import_line_from_user(user: IntermediateUser, team: str) -> dict[str, Any]:
    """Return the import line of a user with their team and channel memberships."""
    memberships = [{"name": name, "roles": CHANNEL_USER_ROLE} for name in user.memberships]
    return {
        "type": "user",
        "user": {
            "username": user.username,
            "email": user.email,
            "auth_service": None,
            "nickname": "",
            "first_name": user.first_name,
            "last_name": user.last_name,
            "position": user.position,
            "roles": SYSTEM_USER_ROLE,
            "locale": None,
            "teams": [{"name": team, "roles": TEAM_USER_ROLE, "channels": memberships}],
        },
    }


def get_attachment_import_data_from_paths(paths: Iterable[str]) -> list[dict[str, Any]]:
    """Return attachment entries for the given file paths."""
    return [{"path": path} for path in paths]


def create_replies_for_attachments(
    attachments: Sequence[dict[str, Any]], user: str, create_at: int
) -> list[dict[str, Any]]:
    """Return replies carrying the attachments beyond the first POST_MAX_ATTACHMENTS.

    The attachments that fit in the post itself are left to the caller.
    """
    if len(attachments) <= POST_MAX_ATTACHMENTS:
        return []
    return [
        _reply(
            user=user,
            message="",
            props=None,
            create_at=create_at + i,
            attachments=list(
                attachments[POST_MAX_ATTACHMENTS * i : POST_MAX_ATTACHMENTS * (i + 1)]
            ),
        )
        for i in range(1, len(attachments) // POST_MAX_ATTACHMENTS + 1)
    ]


def _reaction(reaction: IntermediateReaction) -> dict[str, Any]:
    return {
        "user": reaction.user,
        "emoji_name": reaction.emoji_name,
        "create_at": reaction.create_at,
    }


def _reply(
    *,
    user: str,
    message: str,
    props: dict[str, Any] | None,
    create_at: int,
    attachments: list[dict[str, Any]],
    reactions: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    reply: dict[str, Any] = {
        "user": user,
        "type": None,
        "message": message,
        "props": props,
        "create_at": create_at,
        "edit_at": None,
    }
    if reactions is not None:
        reply["reactions"] = reactions
    reply["attachments"] = attachments
    return reply


def _split_attachments(
    paths: Iterable[str], user: str, create_at: int
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    attachments = get_attachment_import_data_from_paths(paths)
    extra = create_replies_for_attachments(attachments, user, create_at)
    return attachments[:POST_MAX_ATTACHMENTS], extra


def get_import_line_from_post(post: IntermediatePost, team: str) -> dict[str, Any]:
    """Return the import line of a post, with its replies and reactions."""
    post_attachments, replies = _split_attachments(post.attachments, post.user, post.create_at)

    for reply in post.replies:
        reply_attachments, extra = _split_attachments(
            reply.attachments, reply.user, reply.create_at
        )
        replies.extend(extra)
        replies.append(
            {
                "user": reply.user,
                "type": None,
                "message": reply.message,
                "props": None,
                "create_at": reply.create_at,
                "edit_at": None,
                "reactions": [_reaction(r) for r in reply.reactions],
                "attachments": reply_attachments,
            }
        )

    body: dict[str, Any] = {
        "user": post.user,
        "type": post.type,
        "message": post.message,
        "props": post.props,
        "create_at": post.create_at,
        "edit_at": None,
        "replies": replies,
        "reactions": [_reaction(r) for r in post.reactions],
        "attachments": post_attachments,
    }

    if post.is_direct:
        return {
            "type": "direct_post",
            "direct_post": {"channel_members": list(post.channel_members), **body},
        }
    return {
        "type": "post",
        "post": {"team": team, "channel": post.channel, **body},
    }


def _dumps(line: dict[str, Any]) -> str:
    text = json.dumps(line, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    return text.translate(_HTML_ESCAPES)


def write_line(writer: IO[str], line: dict[str, Any]) -> None:
    """Write one import line as compact JSON followed by a newline."""
    try:
        text = _dumps(line)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"An error occurred marshalling the JSON data for export.: {exc}"
        ) from exc
    try:
        writer.write(text + "\n")
    except OSError as exc:
        raise OSError(f"An error occurred writing the export data.: {exc}") from exc


def export_intermediate(
    intermediate: Intermediate,
    team: str,
    output_path: str | os.PathLike[str],
    logger: logging.Logger,
) -> None:
    """Write the whole intermediate representation as an import file."""
    with open(output_path, "w", encoding="utf-8", newline="\n") as output:
        logger.info("Exporting version")
        write_line(output, {"type": "version", "version": 1})

        logger.info("Exporting public channels")
        for channel in intermediate.public_channels:
            write_line(output, get_import_line_from_channel(team, channel))

        logger.info("Exporting private channels")
        for channel in intermediate.private_channels:
            write_line(output, get_import_line_from_channel(team, channel))

        logger.info("Exporting users")
        for user in intermediate.users_by_id.values():
            write_line(output, get_import_line_from_user(user, team))

        logger.info("Exporting group channels")
        for channel in intermediate.group_channels:
            write_line(output, get_import_line_from_direct_channel(team, channel))

        logger.info("Exporting direct channels")
        for channel in intermediate.direct_channels:
            write_line(output, get_import_line_from_direct_channel(team, channel))

        logger.info("Exporting posts")
        for post in intermediate.posts:
            write_line(output, get_import_line_from_post(post, team))