"""Turning a parsed Slack export into the intermediate representation."""

from __future__ import annotations

import json
import logging
import os
import secrets
import time
import zipfile
from typing import Any

from mmetl.check import check_intermediate
from mmetl.download import DownloadError
from mmetl.export import export_intermediate, split_channels_by_member_size
from mmetl.intermediate import (
    CHANNEL_GROUP_MAX_USERS,
    POST_PROPS_MAX_RUNES,
    Intermediate,
    IntermediateChannel,
    IntermediatePost,
    IntermediateReaction,
    IntermediateUser,
)
from mmetl.parse import parse_slack_export_file
from mmetl.posts import (
    HUDDLE_ENDED_TEXT,
    add_file_to_post,
    add_post_to_threads,
    build_message_props_from_huddle,
)
from mmetl.precheck import precheck
from mmetl.slack_types import (
    ChannelType,
    SlackChannel,
    SlackExport,
    SlackPost,
    SlackUser,
)
from mmetl.text import slack_convert_channel_name, slack_convert_timestamp

_MISSING_USER_FIELD = "Unable to import the message as the user field is missing."

_JSON_HTML_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


def _new_id() -> str:
    return secrets.token_hex(13)


def _now_millis() -> int:
    return int(time.time() * 1000)


def _props_length(props: dict[str, Any]) -> int:
    text = json.dumps(props, ensure_ascii=False, separators=(",", ":"), default=str)
    return len(text.translate(_JSON_HTML_ESCAPES))


class Transformer:
    """Holds the intermediate representation of one team's export."""

    def __init__(self, team_name: str, logger: logging.Logger | None = None) -> None:
        self.team_name = team_name
        self.intermediate = Intermediate()
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    # users

    def transform_users(
        self, users: list[SlackUser], skip_empty_emails: bool, default_email_domain: str
    ) -> None:
        """Build intermediate users, keyed by id.

        Raises MissingEmailError for a user without an e-mail address when
        neither a default domain nor skipping empty addresses is set.
        """
        self.logger.info("Transforming users")
        self.logger.debug("TransformUsers: Input SlackUser structs: %r", users)

        result: dict[str, IntermediateUser] = {}
        for user in users:
            delete_at = _now_millis() if user.deleted else 0

            first_name = last_name = ""
            if user.profile.real_name:
                first_name, *rest = user.profile.real_name.split(" ")
                last_name = " ".join(rest)

            new_user = IntermediateUser(
                id=user.profile.bot_id if user.is_bot else user.id,
                username=user.username,
                first_name=first_name,
                last_name=last_name,
                position=user.profile.title,
                email=user.profile.email,
                password=_new_id(),
                delete_at=delete_at,
            )
            self.logger.debug("TransformUsers: newUser IntermediateUser struct: %r", new_user)

            new_user.sanitise(self.logger, default_email_domain, skip_empty_emails)
            result[new_user.id] = new_user
            self.logger.debug("Slack user with email %s has been imported.", new_user.email)

        self.intermediate.users_by_id = result

    def create_intermediate_user(self, user_id: str) -> IntermediateUser:
        """Add a placeholder user for an id missing from the export."""
        new_user = IntermediateUser(
            id=user_id,
            username=user_id.lower(),
            first_name="Deleted",
            last_name="User",
            email=f"{user_id}@local",
            password=_new_id(),
        )
        self.intermediate.users_by_id[user_id] = new_user
        self.logger.warning(
            "Created a new user because the original user was missing from the import "
            "files. user=%s",
            user_id,
        )
        return new_user

    def _author(self, user_id: str) -> IntermediateUser:
        author = self.intermediate.users_by_id.get(user_id)
        if author is None:
            author = self.create_intermediate_user(user_id)
        return author

    # channels

    def transform_channels(self, channels: list[SlackChannel]) -> list[IntermediateChannel]:
        """Build intermediate channels, dropping direct and group ones with one member."""
        users = self.intermediate.users_by_id
        result: list[IntermediateChannel] = []
        for channel in channels:
            valid_members = [member for member in channel.members if member in users]
            channel_type = channel.type
            channel_name = channel.name

            if (
                channel_type in (ChannelType.DIRECT, ChannelType.GROUP)
                and len(valid_members) <= 1
            ):
                self.logger.warning(
                    "Bulk export for direct channels containing a single member is not "
                    "supported. Not importing channel %s",
                    channel_name,
                )
                continue

            if channel_type == ChannelType.GROUP and len(valid_members) > CHANNEL_GROUP_MAX_USERS:
                channel_name = channel.purpose.value
                channel_type = ChannelType.PRIVATE

            name = slack_convert_channel_name(channel_name, channel.id)
            new_channel = IntermediateChannel(
                original_name=channel_name or channel.id,
                name=name,
                display_name=name,
                members=valid_members,
                purpose=channel.purpose.value,
                header=channel.topic.value,
                type=channel_type,
            )
            new_channel.sanitise(self.logger)
            result.append(new_channel)

        return result

    def transform_all_channels(self, slack_export: SlackExport) -> None:
        """Transform every kind of channel; big group channels become private."""
        self.logger.info("Transforming channels")
        self.intermediate.public_channels = self.transform_channels(slack_export.public_channels)
        self.intermediate.private_channels = self.transform_channels(
            slack_export.private_channels
        )

        regular, big = split_channels_by_member_size(
            slack_export.group_channels, CHANNEL_GROUP_MAX_USERS
        )
        self.intermediate.private_channels.extend(self.transform_channels(big))
        self.intermediate.group_channels = self.transform_channels(regular)

        self.intermediate.direct_channels = self.transform_channels(slack_export.direct_channels)

    def populate_user_memberships(self) -> None:
        """Record, for every user, the public and private channels they belong to."""
        self.logger.info("Populating user memberships")
        channels = self.intermediate.public_channels + self.intermediate.private_channels
        for user_id, user in self.intermediate.users_by_id.items():
            user.memberships = [c.name for c in channels if user_id in c.members]

    def populate_channel_memberships(self) -> None:
        """Record the member usernames of every group and direct channel."""
        self.logger.info("Populating channel memberships")
        users = self.intermediate.users_by_id
        for channel in self.intermediate.group_channels + self.intermediate.direct_channels:
            channel.members_usernames = [
                users[member].username for member in channel.members if member in users
            ]

    # posts

    def _reactions_from_post(self, post: SlackPost) -> list[IntermediateReaction]:
        # The real reaction time is unknown; it must come after the post's.
        create_at = slack_convert_timestamp(post.timestamp) + 1
        return [
            IntermediateReaction(
                user=self._author(user_id).username,
                emoji_name=reaction.name.split("::")[0],
                create_at=create_at,
            )
            for reaction in post.reactions
            for user_id in reaction.users
        ]

    def _new_post(
        self, post: SlackPost, author: IntermediateUser, channel: IntermediateChannel, message: str
    ) -> IntermediatePost:
        return IntermediatePost(
            user=author.username,
            channel=channel.name,
            message=message,
            reactions=self._reactions_from_post(post),
            create_at=slack_convert_timestamp(post.timestamp),
        )

    def _add_files_to_post(
        self,
        post: SlackPost,
        skip_attachments: bool,
        slack_export: SlackExport,
        attachments_dir: str,
        new_post: IntermediatePost,
        allow_download: bool,
    ) -> None:
        if skip_attachments or (post.file is None and post.files is None):
            return
        files = [post.file] if post.file is not None else post.files or []
        for file in files:
            if post.file is None and not file.name:
                self.logger.warning(
                    "Not able to access the file %s as file access is denied so skipping",
                    file.id,
                )
                continue
            try:
                add_file_to_post(file, slack_export, new_post, attachments_dir, allow_download)
            except (OSError, LookupError, DownloadError, zipfile.BadZipFile) as exc:
                self.logger.error("Failed to add file to post: %s", exc)

    def _attach_props(
        self, post: SlackPost, new_post: IntermediatePost, discard_invalid_props: bool
    ) -> bool:
        """Set the attachments as props; False if the post is to be dropped."""
        if not post.attachments:
            return True
        props: dict[str, Any] = {"attachments": post.attachments}
        if _props_length(props) <= POST_PROPS_MAX_RUNES:
            new_post.props = props
            return True
        if discard_invalid_props:
            self.logger.warning(
                "Unable to import the post as props exceed the maximum character count. "
                "Skipping as --discard-invalid-props is enabled."
            )
            return False
        self.logger.warning(
            "Unable to add the props to post as they exceed the maximum character count."
        )
        return True

    def _channels_by_original_name(self) -> dict[str, IntermediateChannel]:
        intermediate = self.intermediate
        return {
            channel.original_name: channel
            for channel in (
                intermediate.public_channels
                + intermediate.private_channels
                + intermediate.group_channels
                + intermediate.direct_channels
            )
        }

    def _transform_post(
        self,
        post: SlackPost,
        channel: IntermediateChannel,
        slack_export: SlackExport,
        attachments_dir: str,
        skip_attachments: bool,
        discard_invalid_props: bool,
        allow_download: bool,
    ) -> IntermediatePost | None:
        if post.is_plain_message() or post.is_bot_message():
            author_id = post.user
            if post.is_bot_message() and post.bot_id:
                author_id = post.bot_id
            if not author_id:
                self.logger.warning(_MISSING_USER_FIELD)
                return None
            new_post = self._new_post(post, self._author(author_id), channel, post.text)
            self._add_files_to_post(
                post, skip_attachments, slack_export, attachments_dir, new_post, allow_download
            )
            if not self._attach_props(post, new_post, discard_invalid_props):
                return None
            return new_post

        if post.is_file_comment():
            if post.comment is None:
                self.logger.warning("Unable to import the message as it has no comments.")
                return None
            if not post.comment.user:
                self.logger.warning(_MISSING_USER_FIELD)
                return None
            author = self.intermediate.users_by_id.get(post.comment.user)
            if author is None:
                author = self._author(post.user)
            return self._new_post(post, author, channel, post.comment.comment)

        if (
            post.is_join_leave_message()
            or post.is_me_message()
            or post.is_channel_topic_message()
            or post.is_channel_purpose_message()
            or post.is_channel_name_message()
        ):
            if not post.user:
                self.logger.warning(_MISSING_USER_FIELD)
                return None
            return self._new_post(post, self._author(post.user), channel, post.text)

        if post.is_huddle_thread():
            if not post.user:
                self.logger.warning(_MISSING_USER_FIELD)
                return None
            # Huddles belong to the Slack bot; the room names the real creator.
            poster = post.user
            if post.room is not None and post.room.created_by:
                poster = post.room.created_by
            if post.room is None:
                self.logger.warning("Warning: post.Room is nil for post: %s", HUDDLE_ENDED_TEXT)
            new_post = self._new_post(post, self._author(poster), channel, HUDDLE_ENDED_TEXT)
            new_post.props = build_message_props_from_huddle(post)
            new_post.type = "custom_calls"
            return new_post

        self.logger.warning(
            "Unable to import the message as its type is not supported. "
            "post_type=%s, post_subtype=%s",
            post.type,
            post.subtype,
        )
        return None

    def transform_posts(
        self,
        slack_export: SlackExport,
        attachments_dir: str,
        skip_attachments: bool,
        discard_invalid_props: bool,
        allow_download: bool,
    ) -> None:
        """Build intermediate posts, grouped into threads, for every known channel."""
        self.logger.info("Transforming posts")
        channels = self._channels_by_original_name()

        result: list[IntermediatePost] = []
        for original_name, channel_posts in slack_export.posts.items():
            channel = channels.get(original_name)
            if channel is None:
                self.logger.warning(
                    "--- Couldn't find channel %s referenced by posts", original_name
                )
                continue

            timestamps: set[int] = set()
            threads: dict[str, IntermediatePost] = {}
            ordered = sorted(channel_posts, key=lambda p: slack_convert_timestamp(p.timestamp))
            for post in ordered:
                new_post = self._transform_post(
                    post,
                    channel,
                    slack_export,
                    attachments_dir,
                    skip_attachments,
                    discard_invalid_props,
                    allow_download,
                )
                if new_post is not None:
                    add_post_to_threads(post, new_post, threads, channel, timestamps)

            result.extend(threads.values())

        self.intermediate.posts = result

    def transform(
        self,
        slack_export: SlackExport,
        attachments_dir: str,
        skip_attachments: bool,
        discard_invalid_props: bool,
        allow_download: bool,
        skip_empty_emails: bool,
        default_email_domain: str,
    ) -> None:
        """Run the whole transformation of users, channels, memberships and posts."""
        self.transform_users(slack_export.users, skip_empty_emails, default_email_domain)
        self.transform_all_channels(slack_export)
        self.populate_user_memberships()
        self.populate_channel_memberships()
        self.transform_posts(
            slack_export, attachments_dir, skip_attachments, discard_invalid_props, allow_download
        )

    # archive and output

    def parse_slack_export_file(
        self, archive: zipfile.ZipFile, skip_convert_posts: bool
    ) -> SlackExport:
        """Read the export archive for this transformer's team."""
        return parse_slack_export_file(archive, self.team_name, skip_convert_posts, self.logger)

    def precheck(self, archive: zipfile.ZipFile) -> bool:
        """True if the archive holds every required file."""
        return precheck(archive, self.logger)

    def check_intermediate(self) -> list[str]:
        """Check the intermediate representation and return the warnings found."""
        return check_intermediate(self.intermediate, self.logger)

    def export(self, output_path: str | os.PathLike[str]) -> None:
        """Write the intermediate representation as an import file."""
        export_intermediate(self.intermediate, self.team_name, output_path, self.logger)