"""Placing posts into threads and attaching files to them."""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
import unicodedata
from collections.abc import MutableMapping, MutableSet
from typing import Any

from mmetl.download import download_into
from mmetl.intermediate import IntermediateChannel, IntermediatePost
from mmetl.slack_types import ChannelType, SlackExport, SlackFile, SlackPost
from mmetl.text import make_alpha_num

ATTACHMENTS_INTERNAL = "bulk-export-attachments"
HUDDLE_ENDED_TEXT = "Call ended"

_log = logging.getLogger(__name__)


def add_post_to_threads(
    original: SlackPost,
    post: IntermediatePost,
    threads: MutableMapping[str, IntermediatePost],
    channel: IntermediateChannel,
    timestamps: MutableSet[int],
) -> None:
    """Put post into threads, either as a thread root or as a reply.

    The post's creation time is moved forward until it is not in
    timestamps, and the time it ends up with is added there. Direct and
    group posts are marked as such and given the channel's member names.
    """
    if channel.type in (ChannelType.DIRECT, ChannelType.GROUP):
        post.is_direct = True
        post.channel_members = channel.members_usernames
    else:
        post.is_direct = False

    while post.create_at in timestamps:
        post.create_at += 1
    timestamps.add(post.create_at)

    if original.thread_ts and original.thread_ts != original.timestamp:
        root = threads.get(original.thread_ts)
        if root is None:
            _log.error("ERROR processing post in thread, couldn't find rootPost: %r", original)
            return
        root.replies.append(post)
        return

    key = original.timestamp
    if key in threads:
        _log.warning("WARNING: overwriting root post for thread %s", key)
    threads[key] = post


def normalised_file_path(file: SlackFile, attachments_dir: str) -> str:
    """Return the path, under attachments_dir, that an attachment is stored at."""
    name = make_alpha_num(file.name, ".", "-", "_")
    joined = posixpath.join(attachments_dir, f"{file.id}_{name}")
    return unicodedata.normalize("NFC", posixpath.normpath(joined))


def _add_zip_file_to_post(
    file: SlackFile, slack_export: SlackExport, post: IntermediatePost, attachments_dir: str
) -> None:
    info = slack_export.uploads.get(file.id)
    if info is None:
        raise LookupError(f"failed to retrieve file with id {file.id}")
    if slack_export.archive is None:
        raise LookupError(f"failed to open attachment from zipfile for id {file.id}: no archive")

    dest_path = normalised_file_path(file, ATTACHMENTS_INTERNAL)
    try:
        source = slack_export.archive.open(info)
    except (OSError, KeyError, RuntimeError) as exc:
        raise OSError(f"failed to open attachment from zipfile for id {file.id}: {exc}") from exc

    with source:
        try:
            with open(os.path.join(attachments_dir, dest_path), "wb") as dest:
                shutil.copyfileobj(source, dest)
        except OSError as exc:
            raise OSError(
                f"failed to create file {file.id} in the attachments directory: {exc}"
            ) from exc

    _log.info("SUCCESS COPYING FILE %s TO DEST %s", file.id, dest_path)
    post.attachments.append(dest_path)


def _add_download_to_post(file: SlackFile, post: IntermediatePost, attachments_dir: str) -> None:
    dest_path = normalised_file_path(file, ATTACHMENTS_INTERNAL)
    full_path = os.path.join(attachments_dir, dest_path)

    _log.info("Downloading %r into %r...", file.download_url, dest_path)
    download_into(full_path, file.download_url, file.size)
    _log.info("Download successful!")

    post.attachments.append(dest_path)


def add_file_to_post(
    file: SlackFile,
    slack_export: SlackExport,
    post: IntermediatePost,
    attachments_dir: str,
    allow_download: bool,
) -> None:
    """Store a post's file in the attachments directory and record its path.

    The file is copied from the archive when it is there or when
    downloading is not allowed; otherwise it is downloaded.
    """
    if file.id in slack_export.uploads or not allow_download:
        _add_zip_file_to_post(file, slack_export, post, attachments_dir)
    else:
        _add_download_to_post(file, post, attachments_dir)


def build_message_props_from_huddle(post: SlackPost) -> dict[str, Any]:
    """Return the props of a finished call post built from a huddle."""
    start_at = end_at = 0
    if post.room is not None:
        end_at = post.room.date_end * 1000
        start_at = post.room.date_start * 1000

    return {
        "title": "",
        "end_at": end_at,
        "start_at": start_at,
        "attachments": [{"id": 0, "text": HUDDLE_ENDED_TEXT, "fallback": HUDDLE_ENDED_TEXT}],
        "from_plugin": True,
    }