"""Intermediate representation between a Slack export and the import file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from mmetl.slack_types import ChannelType
from mmetl.text import is_valid_channel_name, truncate_runes

CHANNEL_NAME_MAX_LENGTH = 64
CHANNEL_DISPLAY_NAME_MAX_RUNES = 64
CHANNEL_PURPOSE_MAX_RUNES = 250
CHANNEL_HEADER_MAX_RUNES = 1024
CHANNEL_GROUP_MAX_USERS = 8
USER_FIRST_NAME_MAX_RUNES = 64
USER_LAST_NAME_MAX_RUNES = 64
USER_POSITION_MAX_RUNES = 128
POST_PROPS_MAX_RUNES = 800000

_SHORT_NAME_PREFIX = "slack-channel-"


class MissingEmailError(Exception):
    """A user has no e-mail address and no way to fill one in was given."""


def _byte_length(text: str) -> int:
    return len(text.encode("utf-8"))


def _truncate_bytes(text: str, limit: int) -> str:
    # A cut through a multi-byte character leaves a replacement character,
    # which later fails the channel name check just as broken bytes would.
    return text.encode("utf-8")[:limit].decode("utf-8", errors="replace")


@dataclass
class IntermediateChannel:
    """A channel ready to be written as an import line."""

    id: str = ""
    original_name: str = ""
    name: str = ""
    display_name: str = ""
    members: list[str] = field(default_factory=list)
    members_usernames: list[str] = field(default_factory=list)
    purpose: str = ""
    header: str = ""
    topic: str = ""
    type: ChannelType = ChannelType.OPEN

    def sanitise(self, logger: logging.Logger) -> None:
        """Bring names, purpose and header within the import limits."""
        if self.type == ChannelType.DIRECT:
            return

        self.name = self.name.strip("_-")
        if _byte_length(self.name) > CHANNEL_NAME_MAX_LENGTH:
            logger.warning(
                "Channel %s handle exceeds the maximum length. It will be truncated when imported.",
                self.display_name,
            )
            self.name = _truncate_bytes(self.name, CHANNEL_NAME_MAX_LENGTH)
        if _byte_length(self.name) == 1:
            self.name = _SHORT_NAME_PREFIX + self.name
        if not is_valid_channel_name(self.name):
            self.name = self.id.lower()

        self.display_name = self.display_name.strip("_-")
        if len(self.display_name) > CHANNEL_DISPLAY_NAME_MAX_RUNES:
            logger.warning(
                "Channel %s display name exceeds the maximum length. "
                "It will be truncated when imported.",
                self.display_name,
            )
            self.display_name = truncate_runes(self.display_name, CHANNEL_DISPLAY_NAME_MAX_RUNES)
        if _byte_length(self.display_name) == 1:
            self.display_name = _SHORT_NAME_PREFIX + self.display_name
        if not is_valid_channel_name(self.display_name):
            self.display_name = self.id.lower()

        if len(self.purpose) > CHANNEL_PURPOSE_MAX_RUNES:
            logger.warning(
                "Channel %s purpose exceeds the maximum length. It will be truncated when imported.",
                self.display_name,
            )
            self.purpose = truncate_runes(self.purpose, CHANNEL_PURPOSE_MAX_RUNES)

        if len(self.header) > CHANNEL_HEADER_MAX_RUNES:
            logger.warning(
                "Channel %s header exceeds the maximum length. It will be truncated when imported.",
                self.display_name,
            )
            self.header = truncate_runes(self.header, CHANNEL_HEADER_MAX_RUNES)


@dataclass
class IntermediateUser:
    """A user ready to be written as an import line."""

    id: str = ""
    username: str = ""
    first_name: str = ""
    last_name: str = ""
    position: str = ""
    email: str = ""
    password: str = ""
    memberships: list[str] = field(default_factory=list)
    delete_at: int = 0

    def sanitise(
        self, logger: logging.Logger, default_email_domain: str, skip_empty_emails: bool
    ) -> None:
        """Fill in a missing e-mail address and cut over-long fields.

        Raises MissingEmailError when the address is empty and neither a
        default domain nor skipping empty addresses was asked for.
        """
        logger.debug("TransformUsers: Sanitise: IntermediateUser receiver: %r", self)

        if not self.email:
            if skip_empty_emails:
                logger.warning(
                    "User %s does not have an email address in the Slack export. "
                    "Using blank email address due to --skip-empty-emails flag.",
                    self.username,
                )
                return

            if default_email_domain:
                self.email = f"{self.username}@{default_email_domain}"
                logger.warning(
                    "User %s does not have an email address in the Slack export. "
                    "Used %s as a placeholder. The user should update their email "
                    "address once logged in to the system.",
                    self.username,
                    self.email,
                )
            else:
                message = (
                    f"User {self.username} does not have an email address in the Slack export. "
                    "Please provide an email domain through the --default-email-domain flag, "
                    "to assign this user's email address. Alternatively, use the "
                    "--skip-empty-emails flag to set the user's email to an empty string."
                )
                logger.error(message)
                raise MissingEmailError(message)

        if len(self.first_name) > USER_FIRST_NAME_MAX_RUNES:
            logger.warning(
                "User %s first name exceeds the maximum length. It will be truncated when imported.",
                self.username,
            )
            self.first_name = truncate_runes(self.first_name, USER_FIRST_NAME_MAX_RUNES)

        if len(self.last_name) > USER_LAST_NAME_MAX_RUNES:
            logger.warning(
                "User %s last name exceeds the maximum length. It will be truncated when imported.",
                self.username,
            )
            self.last_name = truncate_runes(self.last_name, USER_LAST_NAME_MAX_RUNES)

        if len(self.position) > USER_POSITION_MAX_RUNES:
            logger.warning(
                "User %s position exceeds the maximum length. It will be truncated when imported.",
                self.username,
            )
            self.position = truncate_runes(self.position, USER_POSITION_MAX_RUNES)


@dataclass
class IntermediateReaction:
    """An emoji reaction given by one user."""

    user: str = ""
    emoji_name: str = ""
    create_at: int = 0


@dataclass
class IntermediatePost:
    """A post, with its thread replies, ready to be written as an import line."""

    user: str = ""
    channel: str = ""
    message: str = ""
    props: dict[str, Any] | None = None
    create_at: int = 0
    type: str = ""
    attachments: list[str] = field(default_factory=list)
    replies: list[IntermediatePost] = field(default_factory=list)
    reactions: list[IntermediateReaction] = field(default_factory=list)
    is_direct: bool = False
    channel_members: list[str] = field(default_factory=list)


@dataclass
class Intermediate:
    """All channels, users and posts of a transformed export."""

    public_channels: list[IntermediateChannel] = field(default_factory=list)
    private_channels: list[IntermediateChannel] = field(default_factory=list)
    group_channels: list[IntermediateChannel] = field(default_factory=list)
    direct_channels: list[IntermediateChannel] = field(default_factory=list)
    users_by_id: dict[str, IntermediateUser] = field(default_factory=dict)
    posts: list[IntermediatePost] = field(default_factory=list)