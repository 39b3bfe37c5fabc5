"""Checks that an export archive holds the files an import needs."""

from __future__ import annotations

import logging
import zipfile

REQUIRED_FILES = ("channels.json", "integration_logs.json")


def check_for_required_file(
    archive: zipfile.ZipFile, file_name: str, logger: logging.Logger
) -> bool:
    """True if file_name sits at the top of the archive; logs an error otherwise."""
    names = archive.namelist()
    if file_name in names:
        return True

    if any(name.endswith("/" + file_name) for name in names):
        logger.error(
            "Failed to find required file %s in the correct location, "
            "but might have found it in a subdirectory.",
            file_name,
        )
    else:
        logger.error("Failed to find required file %s in the correct location.", file_name)
    return False


def precheck(archive: zipfile.ZipFile, logger: logging.Logger) -> bool:
    """True if every required file is present. Each missing file is logged."""
    results = [check_for_required_file(archive, name, logger) for name in REQUIRED_FILES]
    return all(results)