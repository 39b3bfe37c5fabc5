"""Data types describing the contents of a Slack export archive."""

from __future__ import annotations

import zipfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ChannelType(str, Enum):
    """Kinds of channel known to the import format."""

    OPEN = "O"
    PRIVATE = "P"
    DIRECT = "D"
    GROUP = "G"

    def __str__(self) -> str:
        return self.value


def _mapping(data: Any, what: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object for {what}, got {type(data).__name__}")
    return data


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {type(value).__name__}")
    return value


def _int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer, got {type(value).__name__}")
    return value


def _bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r} must be a boolean, got {type(value).__name__}")
    return value


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"field {key!r} must be a list of strings")
    return list(value)


def _list(data: dict[str, Any], key: str) -> list[Any] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValueError(f"field {key!r} must be a list, got {type(value).__name__}")
    return value


@dataclass
class SlackChannelSub:
    """A value wrapper used by Slack for a channel's purpose and topic."""

    value: str = ""


def _sub_from_dict(data: Any, what: str) -> SlackChannelSub:
    return SlackChannelSub(value=_str(_mapping(data, what), "value"))


@dataclass
class SlackChannel:
    """A channel as listed in one of the channel files of an export."""

    id: str = ""
    name: str = ""
    creator: str = ""
    members: list[str] = field(default_factory=list)
    purpose: SlackChannelSub = field(default_factory=SlackChannelSub)
    topic: SlackChannelSub = field(default_factory=SlackChannelSub)
    type: ChannelType = ChannelType.OPEN

    @classmethod
    def from_dict(cls, data: Any, channel_type: ChannelType) -> SlackChannel:
        """Build a channel from decoded JSON, giving it the type of the file it came from."""
        data = _mapping(data, "channel")
        return cls(
            id=_str(data, "id"),
            name=_str(data, "name"),
            creator=_str(data, "creator"),
            members=_str_list(data, "members"),
            purpose=_sub_from_dict(data.get("purpose"), "purpose"),
            topic=_sub_from_dict(data.get("topic"), "topic"),
            type=ChannelType(channel_type),
        )


@dataclass
class SlackProfile:
    """The profile part of a Slack user."""

    bot_id: str = ""
    real_name: str = ""
    email: str = ""
    title: str = ""


@dataclass
class SlackUser:
    """A user as listed in users.json."""

    id: str = ""
    username: str = ""
    is_bot: bool = False
    profile: SlackProfile = field(default_factory=SlackProfile)
    deleted: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> SlackUser:
        """Build a user from decoded JSON."""
        data = _mapping(data, "user")
        profile = _mapping(data.get("profile"), "profile")
        return cls(
            id=_str(data, "id"),
            username=_str(data, "name"),
            is_bot=_bool(data, "is_bot"),
            profile=SlackProfile(
                bot_id=_str(profile, "bot_id"),
                real_name=_str(profile, "real_name"),
                email=_str(profile, "email"),
                title=_str(profile, "title"),
            ),
            deleted=_bool(data, "deleted"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the user in the shape of users.json."""
        return {
            "id": self.id,
            "name": self.username,
            "is_bot": self.is_bot,
            "profile": {
                "bot_id": self.profile.bot_id,
                "real_name": self.profile.real_name,
                "email": self.profile.email,
                "title": self.profile.title,
            },
            "deleted": self.deleted,
        }


@dataclass
class SlackFile:
    """A file shared in a post."""

    id: str = ""
    name: str = ""
    size: int = 0
    download_url: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> SlackFile:
        """Build a file description from decoded JSON."""
        data = _mapping(data, "file")
        return cls(
            id=_str(data, "id"),
            name=_str(data, "name"),
            size=_int(data, "size"),
            download_url=_str(data, "url_private_download"),
        )


@dataclass
class SlackReaction:
    """An emoji reaction on a post and the users who gave it."""

    name: str = ""
    count: int = 0
    users: list[str] = field(default_factory=list)


def _reaction_from_dict(data: Any) -> SlackReaction:
    data = _mapping(data, "reaction")
    return SlackReaction(
        name=_str(data, "name"),
        count=_int(data, "count"),
        users=_str_list(data, "users"),
    )


@dataclass
class SlackRoom:
    """The call room attached to a huddle post."""

    id: str = ""
    name: str = ""
    created_by: str = ""
    date_start: int = 0
    date_end: int = 0
    participants: list[str] = field(default_factory=list)
    participant_history: list[str] = field(default_factory=list)
    thread_ts: str = ""
    channels: list[str] = field(default_factory=list)
    is_dm_call: bool = False
    was_rejected: bool = False
    was_missed: bool = False
    was_accepted: bool = False
    has_ended: bool = False


def _room_from_dict(data: Any) -> SlackRoom:
    data = _mapping(data, "room")
    return SlackRoom(
        id=_str(data, "id"),
        name=_str(data, "name"),
        created_by=_str(data, "created_by"),
        date_start=_int(data, "date_start"),
        date_end=_int(data, "date_end"),
        participants=_str_list(data, "participants"),
        participant_history=_str_list(data, "participant_history"),
        thread_ts=_str(data, "thread_root_ts"),
        channels=_str_list(data, "channels"),
        is_dm_call=_bool(data, "is_dm_call"),
        was_rejected=_bool(data, "was_rejected"),
        was_missed=_bool(data, "was_missed"),
        was_accepted=_bool(data, "was_accepted"),
        has_ended=_bool(data, "has_ended"),
    )


@dataclass
class SlackComment:
    """The comment carried by a file comment post."""

    user: str = ""
    comment: str = ""


@dataclass
class SlackPost:
    """A single message from a channel's daily post file."""

    user: str = ""
    bot_id: str = ""
    bot_username: str = ""
    text: str = ""
    timestamp: str = ""
    thread_ts: str = ""
    type: str = ""
    subtype: str = ""
    comment: SlackComment | None = None
    upload: bool = False
    file: SlackFile | None = None
    files: list[SlackFile] | None = None
    attachments: list[dict[str, Any]] = field(default_factory=list)
    reactions: list[SlackReaction] = field(default_factory=list)
    room: SlackRoom | None = None

    @classmethod
    def from_dict(cls, data: Any) -> SlackPost:
        """Build a post from decoded JSON."""
        data = _mapping(data, "post")

        comment = None
        if data.get("comment") is not None:
            raw_comment = _mapping(data["comment"], "comment")
            comment = SlackComment(
                user=_str(raw_comment, "user"), comment=_str(raw_comment, "comment")
            )

        file = SlackFile.from_dict(data["file"]) if data.get("file") is not None else None

        raw_files = _list(data, "files")
        files = None if raw_files is None else [SlackFile.from_dict(f) for f in raw_files]

        attachments = [
            dict(_mapping(item, "attachment")) for item in _list(data, "attachments") or []
        ]
        reactions = [_reaction_from_dict(item) for item in _list(data, "reactions") or []]
        room = _room_from_dict(data["room"]) if data.get("room") is not None else None

        return cls(
            user=_str(data, "user"),
            bot_id=_str(data, "bot_id"),
            bot_username=_str(data, "username"),
            text=_str(data, "text"),
            timestamp=_str(data, "ts"),
            thread_ts=_str(data, "thread_ts"),
            type=_str(data, "type"),
            subtype=_str(data, "subtype"),
            comment=comment,
            upload=_bool(data, "upload"),
            file=file,
            files=files,
            attachments=attachments,
            reactions=reactions,
            room=room,
        )

    def _is_message(self, *subtypes: str) -> bool:
        return self.type == "message" and self.subtype in subtypes

    def is_plain_message(self) -> bool:
        """True for ordinary messages, file shares and thread broadcasts."""
        return self._is_message("", "file_share", "thread_broadcast")

    def is_file_comment(self) -> bool:
        return self._is_message("file_comment")

    def is_bot_message(self) -> bool:
        return self._is_message("bot_message", "tombstone")

    def is_join_leave_message(self) -> bool:
        return self._is_message("channel_join", "channel_leave")

    def is_me_message(self) -> bool:
        return self._is_message("me_message")

    def is_channel_topic_message(self) -> bool:
        return self._is_message("channel_topic")

    def is_channel_purpose_message(self) -> bool:
        return self._is_message("channel_purpose")

    def is_channel_name_message(self) -> bool:
        return self._is_message("channel_name")

    def is_huddle_thread(self) -> bool:
        return self._is_message("huddle_thread")


@dataclass
class SlackExport:
    """Everything read from a Slack export archive."""

    team_name: str = ""
    channels: list[SlackChannel] = field(default_factory=list)
    public_channels: list[SlackChannel] = field(default_factory=list)
    private_channels: list[SlackChannel] = field(default_factory=list)
    group_channels: list[SlackChannel] = field(default_factory=list)
    direct_channels: list[SlackChannel] = field(default_factory=list)
    users: list[SlackUser] = field(default_factory=list)
    posts: dict[str, list[SlackPost]] = field(default_factory=dict)
    uploads: dict[str, zipfile.ZipInfo] = field(default_factory=dict)
    archive: zipfile.ZipFile | None = None