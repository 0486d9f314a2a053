"""
archive_service.py — Locate the single KML document inside an uploaded archive.
"""

import io
import logging
import zipfile

from config import MAX_MARKUP_SIZE
from credit_claims.errors import ArchiveError, NoMarkupFileFound, MultipleMarkupFilesFound

logger = logging.getLogger(__name__)

MARKUP_EXTENSION = ".kml"
ARCHIVE_EXTENSIONS = (".zip", ".kmz")


def _is_markup_entry(info: zipfile.ZipInfo) -> bool:
    if info.is_dir():
        return False
    # Finder adds AppleDouble shadows like __MACOSX/._site.kml
    if info.filename.startswith("__MACOSX/"):
        return False
    return info.filename.lower().endswith(MARKUP_EXTENSION)


def find_markup_entry(content: bytes) -> tuple[str, str]:
    """
    Return (entry_name, kml_text) for the one .kml entry in a zip archive.

    Raises NoMarkupFileFound / MultipleMarkupFilesFound / ArchiveError.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(content))
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"Uploaded file is not a valid zip archive: {e}") from e

    with archive:
        matches = [info for info in archive.infolist() if _is_markup_entry(info)]
        if not matches:
            raise NoMarkupFileFound()
        if len(matches) > 1:
            raise MultipleMarkupFilesFound([info.filename for info in matches])

        entry = matches[0]
        if entry.file_size > MAX_MARKUP_SIZE:
            raise ArchiveError(
                f"{entry.filename} is {entry.file_size} bytes uncompressed; "
                f"max is {MAX_MARKUP_SIZE} bytes"
            )

        try:
            raw = archive.read(entry)
        except (zipfile.BadZipFile, NotImplementedError, RuntimeError) as e:
            # RuntimeError: encrypted entry; NotImplementedError: unsupported compression
            raise ArchiveError(f"Could not read {entry.filename}: {e}") from e

    logger.info("Found KML entry %s (%d bytes)", entry.filename, len(raw))
    return entry.filename, decode_markup(raw)


def decode_markup(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ArchiveError(f"KML document is not valid UTF-8: {e}") from e


def read_markup(filename: str, content: bytes) -> str:
    """
    Return KML text from an upload: a .zip/.kmz archive or a bare .kml file.
    """
    name = (filename or "").lower()
    if name.endswith(ARCHIVE_EXTENSIONS):
        _, text = find_markup_entry(content)
        return text
    if name.endswith(MARKUP_EXTENSION):
        return decode_markup(content)
    raise ArchiveError(
        "Invalid file type. Upload a .zip or .kmz archive, or a .kml file."
    )
