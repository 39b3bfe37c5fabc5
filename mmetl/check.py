"""Consistency checks of a transformed export."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable

from mmetl.intermediate import Intermediate, IntermediateChannel, IntermediatePost


def direct_channel_name(members: Iterable[str]) -> str:
    """Name a direct or group channel by its sorted members joined with '_'."""
    return "_".join(sorted(members))


def check_intermediate(intermediate: Intermediate, logger: logging.Logger) -> list[str]:
    """Look for duplicate channels, unknown members and orphaned posts.

    Every finding is logged as a warning; the warnings are also returned.
    """
    warnings: list[str] = []

    def warn(message: str) -> None:
        warnings.append(message)
        logger.warning(message)

    logger.info("Checking intermediate resources")

    channels_by_name: dict[str, IntermediateChannel] = {}
    named_groups = (
        ("public", intermediate.public_channels, False),
        ("private", intermediate.private_channels, False),
        ("group", intermediate.group_channels, True),
        ("direct", intermediate.direct_channels, True),
    )
    for kind, channels, by_members in named_groups:
        for channel in channels:
            name = direct_channel_name(channel.members) if by_members else channel.name
            if name in channels_by_name:
                warn(f"WARNING -- Duplicate {kind} channel name: {name}")
                continue
            channels_by_name[name] = channel

    posts_by_channel: dict[str, list[IntermediatePost]] = defaultdict(list)
    for post in intermediate.posts:
        name = post.channel
        if post.is_direct and post.channel_members:
            name = direct_channel_name(post.channel_members)
        posts_by_channel[name].append(post)

    for name, channel in channels_by_name.items():
        usernames = []
        for member in channel.members:
            user = intermediate.users_by_id.get(member)
            if user is None:
                warn(f"-- Invalid member: {member}")
            else:
                usernames.append(user.username)
        logger.debug(
            'Channel: "%s" Type: "%s" Post count: %d Members: "%s"',
            name,
            channel.type.value if hasattr(channel.type, "value") else channel.type,
            len(posts_by_channel.get(name, [])),
            ", ".join(usernames),
        )

    for name, posts in posts_by_channel.items():
        if name not in channels_by_name:
            warn(f"-- Channel {name} has {len(posts)} posts but not a channel")

    return warnings