import zipfile

import pytest
import responses

from mmetl.intermediate import IntermediateChannel, IntermediatePost
from mmetl.posts import (
    add_file_to_post,
    add_post_to_threads,
    build_message_props_from_huddle,
    normalised_file_path,
)
from mmetl.slack_types import ChannelType, SlackExport, SlackFile, SlackPost, SlackRoom


@pytest.mark.parametrize(
    "timestamps, expected_ts, expected_set",
    [
        (set(), 1549307811071, {1549307811071}),
        ({1549307811071}, 1549307811072, {1549307811071, 1549307811072}),
        (
            {1549307811071, 1549307811072},
            1549307811073,
            {1549307811071, 1549307811072, 1549307811073},
        ),
    ],
)
def test_avoid_duplicated_timestamps(timestamps, expected_ts, expected_set):
    post = IntermediatePost(create_at=1549307811071)
    original = SlackPost(timestamp="thread-ts")
    channel = IntermediateChannel(type=ChannelType.OPEN)
    threads = {}

    add_post_to_threads(original, post, threads, channel, timestamps)

    assert threads["thread-ts"] is post
    assert post.create_at == expected_ts
    assert timestamps == expected_set


def test_reply_goes_to_root():
    channel = IntermediateChannel(type=ChannelType.OPEN)
    threads, timestamps = {}, set()
    root = IntermediatePost(create_at=10)
    reply = IntermediatePost(create_at=20)
    add_post_to_threads(
        SlackPost(timestamp="1.0001", thread_ts="1.0001"), root, threads, channel, timestamps
    )
    add_post_to_threads(
        SlackPost(timestamp="2.0001", thread_ts="1.0001"), reply, threads, channel, timestamps
    )
    assert list(threads) == ["1.0001"]
    assert root.replies == [reply]
    assert timestamps == {10, 20}


def test_reply_without_root_is_dropped():
    channel = IntermediateChannel(type=ChannelType.OPEN)
    threads, timestamps = {}, set()
    reply = IntermediatePost(create_at=5)
    add_post_to_threads(
        SlackPost(timestamp="2.0001", thread_ts="1.0001"), reply, threads, channel, timestamps
    )
    assert threads == {}
    assert timestamps == {5}


def test_root_is_overwritten():
    channel = IntermediateChannel(type=ChannelType.OPEN)
    threads, timestamps = {}, set()
    first = IntermediatePost(message="first")
    second = IntermediatePost(message="second")
    add_post_to_threads(SlackPost(timestamp="1.0001"), first, threads, channel, timestamps)
    add_post_to_threads(SlackPost(timestamp="1.0001"), second, threads, channel, timestamps)
    assert threads["1.0001"].message == "second"
    assert second.create_at == 1


@pytest.mark.parametrize("channel_type", [ChannelType.DIRECT, ChannelType.GROUP])
def test_direct_posts_get_channel_members(channel_type):
    channel = IntermediateChannel(type=channel_type, members_usernames=["u1", "u2"])
    post = IntermediatePost()
    add_post_to_threads(SlackPost(timestamp="1.0001"), post, {}, channel, set())
    assert post.is_direct is True
    assert post.channel_members == ["u1", "u2"]


def test_public_post_is_not_direct():
    channel = IntermediateChannel(type=ChannelType.PRIVATE, members_usernames=["u1"])
    post = IntermediatePost(is_direct=True)
    add_post_to_threads(SlackPost(timestamp="1.0001"), post, {}, channel, set())
    assert post.is_direct is False
    assert post.channel_members == []


@pytest.mark.parametrize(
    "name, expected",
    [
        ("my file.txt", "bulk-export-attachments/F1_my_file.txt"),
        ("Straße.pdf", "bulk-export-attachments/F1_Strasse.pdf"),
        ("café-1_a.png", "bulk-export-attachments/F1_cafe-1_a.png"),
    ],
)
def test_normalised_file_path(name, expected):
    file = SlackFile(id="F1", name=name)
    assert normalised_file_path(file, "bulk-export-attachments") == expected


def test_normalised_file_path_without_dir():
    assert normalised_file_path(SlackFile(id="F2", name="a b"), "") == "F2_a_b"


def _export_with_upload(tmp_path, content):
    archive_path = tmp_path / "export.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr("__uploads/F1/a.txt", content)
    archive = zipfile.ZipFile(archive_path)
    info = archive.getinfo("__uploads/F1/a.txt")
    return SlackExport(archive=archive, uploads={"F1": info})


def test_add_file_from_archive(tmp_path):
    (tmp_path / "out" / "bulk-export-attachments").mkdir(parents=True)
    export = _export_with_upload(tmp_path, b"hello attachment")
    post = IntermediatePost()
    try:
        add_file_to_post(
            SlackFile(id="F1", name="a.txt"), export, post, str(tmp_path / "out"), False
        )
    finally:
        export.archive.close()
    assert post.attachments == ["bulk-export-attachments/F1_a.txt"]
    stored = tmp_path / "out" / "bulk-export-attachments" / "F1_a.txt"
    assert stored.read_bytes() == b"hello attachment"


def test_add_missing_file_without_download(tmp_path):
    export = SlackExport()
    post = IntermediatePost()
    with pytest.raises(LookupError, match="failed to retrieve file with id F9"):
        add_file_to_post(SlackFile(id="F9", name="x.txt"), export, post, str(tmp_path), False)
    assert post.attachments == []


def test_add_file_by_download(tmp_path):
    (tmp_path / "bulk-export-attachments").mkdir()
    body = b"downloaded bytes" * 100
    url = "http://localhost/files/F3"
    file = SlackFile(id="F3", name="doc.bin", size=len(body), download_url=url)
    post = IntermediatePost()

    with responses.RequestsMock() as mock:
        mock.add(responses.GET, url, body=body, status=200)
        add_file_to_post(file, SlackExport(), post, str(tmp_path), True)

    assert post.attachments == ["bulk-export-attachments/F3_doc.bin"]
    assert (tmp_path / "bulk-export-attachments" / "F3_doc.bin").read_bytes() == body


def test_huddle_props_with_room():
    post = SlackPost(room=SlackRoom(created_by="m1", date_start=1695219818, date_end=1695220775))
    props = build_message_props_from_huddle(post)
    assert props == {
        "title": "",
        "end_at": 1695220775000,
        "start_at": 1695219818000,
        "attachments": [{"id": 0, "text": "Call ended", "fallback": "Call ended"}],
        "from_plugin": True,
    }


def test_huddle_props_without_room():
    props = build_message_props_from_huddle(SlackPost())
    assert props["start_at"] == 0
    assert props["end_at"] == 0
    assert props["attachments"][0]["text"] == "Call ended"