import logging

from mmetl.check import check_intermediate, direct_channel_name
from mmetl.intermediate import (
    Intermediate,
    IntermediateChannel,
    IntermediatePost,
    IntermediateUser,
)
from mmetl.slack_types import ChannelType

LOGGER = logging.getLogger("test-check")


def _users():
    return {
        "id1": IntermediateUser(id="id1", username="u1"),
        "id2": IntermediateUser(id="id2", username="u2"),
    }


def test_direct_channel_name_sorts_members():
    members = ["b", "a", "c"]
    assert direct_channel_name(members) == "a_b_c"
    assert members == ["b", "a", "c"]


def test_direct_channel_name_is_order_independent():
    assert direct_channel_name(["x", "y"]) == direct_channel_name(["y", "x"])


def test_clean_intermediate_has_no_warnings():
    intermediate = Intermediate(
        public_channels=[IntermediateChannel(name="general", members=["id1", "id2"])],
        direct_channels=[
            IntermediateChannel(type=ChannelType.DIRECT, members=["id2", "id1"])
        ],
        users_by_id=_users(),
        posts=[
            IntermediatePost(channel="general"),
            IntermediatePost(is_direct=True, channel_members=["id1", "id2"]),
        ],
    )
    assert check_intermediate(intermediate, LOGGER) == []


def test_duplicate_channel_names_are_reported():
    intermediate = Intermediate(
        public_channels=[
            IntermediateChannel(name="dup", members=["id1"]),
            IntermediateChannel(name="dup", members=["id1"]),
        ],
        private_channels=[IntermediateChannel(name="dup", members=["id1"])],
        users_by_id=_users(),
    )
    warnings = check_intermediate(intermediate, LOGGER)
    assert warnings == [
        "WARNING -- Duplicate public channel name: dup",
        "WARNING -- Duplicate private channel name: dup",
    ]


def test_invalid_member_is_reported():
    intermediate = Intermediate(
        public_channels=[IntermediateChannel(name="general", members=["id1", "ghost"])],
        users_by_id=_users(),
    )
    assert check_intermediate(intermediate, LOGGER) == ["-- Invalid member: ghost"]


def test_posts_without_channel_are_reported(caplog):
    intermediate = Intermediate(
        public_channels=[IntermediateChannel(name="general", members=["id1"])],
        users_by_id=_users(),
        posts=[IntermediatePost(channel="lost"), IntermediatePost(channel="lost")],
    )
    with caplog.at_level(logging.WARNING, logger="test-check"):
        warnings = check_intermediate(intermediate, LOGGER)
    assert warnings == ["-- Channel lost has 2 posts but not a channel"]
    assert "has 2 posts but not a channel" in caplog.text


def test_post_count_is_logged_per_channel(caplog):
    intermediate = Intermediate(
        public_channels=[IntermediateChannel(name="general", members=["id1", "id2"])],
        users_by_id=_users(),
        posts=[IntermediatePost(channel="general")],
    )
    with caplog.at_level(logging.DEBUG, logger="test-check"):
        check_intermediate(intermediate, LOGGER)
    assert 'Channel: "general" Type: "O" Post count: 1 Members: "u1, u2"' in caplog.text