"""Resumable HTTP downloads of export attachments."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from typing import BinaryIO

import requests

from mmetl.text import human_size

DEFAULT_OVERLAP = 512
USER_AGENT = "mmetl/1.0"
_CHUNK_SIZE = 64 * 1024

_log = logging.getLogger(__name__)


class DownloadError(Exception):
    """A download could not be completed."""


class OverlapNotEqualError(DownloadError):
    """The resumed data does not match the data already on disk."""

    def __init__(self) -> None:
        super().__init__("download: the downloaded file doesn't match the one on disk")


def download_into(filename: str | os.PathLike[str], url: str, size: int) -> None:
    """Download url into filename, resuming from what is already there.

    A resumed download re-fetches up to 512 bytes that are already on disk
    and checks them against the local copy; a mismatch raises
    OverlapNotEqualError instead of silently starting over. If the server
    ignores the Range header the file is emptied and fetched again.
    """
    flags = os.O_RDWR | os.O_CREAT | getattr(os, "O_BINARY", 0)
    try:
        fd = os.open(filename, flags, 0o660)
    except OSError as exc:
        raise DownloadError(f"download: error opening the destination file: {exc}") from exc

    with os.fdopen(fd, "r+b") as existing:
        _resume_download(existing, size, url)


def _calculate_size(existing: BinaryIO, size: int) -> tuple[int, int]:
    try:
        existing_size = os.fstat(existing.fileno()).st_size
    except OSError as exc:
        raise DownloadError(f"download: error reading file info: {exc}") from exc

    if existing_size == size:
        return existing_size, 0
    if existing_size > size:
        try:
            existing.truncate(0)
        except OSError as exc:
            raise DownloadError(f"download: error emptying file: {exc}") from exc
        existing_size = 0

    return existing_size, min(DEFAULT_OVERLAP, existing_size)


def _request(url: str, start: int) -> requests.Response:
    headers = {"User-Agent": USER_AGENT, "Range": f"bytes={start}-"}
    try:
        return requests.get(url, headers=headers, stream=True)
    except (
        requests.exceptions.MissingSchema,
        requests.exceptions.InvalidSchema,
        requests.exceptions.InvalidURL,
    ) as exc:
        raise DownloadError(f"download: error creating HTTP request: {exc}") from exc
    except requests.RequestException as exc:
        raise DownloadError(f"download: error during HTTP request: {exc}") from exc


def _read_exactly(chunks: Iterator[bytes], count: int) -> tuple[bytes, bytes]:
    buffer = bytearray()
    for chunk in chunks:
        buffer.extend(chunk)
        if len(buffer) >= count:
            return bytes(buffer[:count]), bytes(buffer[count:])
    raise DownloadError("download: error downloading the overlapping data: unexpected EOF")


def _check_overlap(existing: BinaryIO, chunks: Iterator[bytes], overlap: int) -> bytes:
    remote, leftover = _read_exactly(chunks, overlap)

    try:
        existing.seek(-overlap, os.SEEK_END)
    except OSError as exc:
        raise DownloadError(
            f"download: error seeking to the start of the existing overlap: {exc}"
        ) from exc

    local = existing.read(overlap)
    if len(local) < overlap:
        raise DownloadError("download: error reading the local overlapping data: unexpected EOF")

    if remote != local:
        raise OverlapNotEqualError()
    return leftover


def _resume_download(existing: BinaryIO, size: int, url: str) -> None:
    existing_size, overlap = _calculate_size(existing, size)
    if existing_size == size:
        return

    start = existing_size - overlap
    if start:
        _log.info("Resuming download from %s", human_size(start))

    with _request(url, start) as response:
        if response.status_code == 206:
            pass
        elif response.status_code == 200:
            overlap = 0
            try:
                existing.truncate(0)
            except OSError as exc:
                raise DownloadError(
                    f"download: error emptying file for re-download: {exc}"
                ) from exc
        else:
            status = f"{response.status_code} {response.reason or ''}".strip()
            raise DownloadError(f'download: HTTP request failed with status "{status}"')

        chunks = response.iter_content(_CHUNK_SIZE)
        try:
            leftover = _check_overlap(existing, chunks, overlap) if overlap else b""
            try:
                existing.seek(0, os.SEEK_END)
            except OSError as exc:
                raise DownloadError(
                    f"download: error seeking to the end of the existing file: {exc}"
                ) from exc
            existing.write(leftover)
            for chunk in chunks:
                existing.write(chunk)
        except requests.RequestException as exc:
            raise DownloadError(f"download: error during download: {exc}") from exc