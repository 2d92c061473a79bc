"""
Byte-range helpers for the audio streaming endpoint.

Only the single-range subset of RFC 7233 is supported:
``bytes=<start>-<end>`` with ``end`` optional.
"""

import os
from pathlib import Path
from typing import Optional, Union

from werkzeug.http import parse_range_header as parse_werkzeug_range

from shared.constants import AUDIO_MIMETYPES, DEFAULT_AUDIO_MIMETYPE
from shared.exceptions import InvalidRange
from shared.models import ByteRange


def parse_range_header(header: Optional[str], total_size: int) -> Optional[ByteRange]:
    """
    Parse a Range header against a resource of ``total_size`` bytes.

    Returns None when no header was sent. An ``end`` past the last byte is
    clamped to ``total_size - 1``. Raises InvalidRange for anything else we
    cannot satisfy: non-numeric bounds, suffix or multi-range forms,
    ``start > end`` and ``start >= total_size``.
    """
    if header is None:
        return None
    parsed = parse_werkzeug_range(header.strip())
    if parsed is None or len(parsed.ranges) != 1 or parsed.ranges[0][0] < 0:
        raise InvalidRange(header, total_size)
    span = parsed.range_for_length(total_size)
    if span is None:
        raise InvalidRange(header, total_size)
    start, stop = span
    return ByteRange(start=start, end=stop - 1, total_size=total_size)


def guess_mimetype(path: Union[str, Path]) -> str:
    ext = os.path.splitext(str(path))[1].lower().lstrip('.')
    return AUDIO_MIMETYPES.get(ext, DEFAULT_AUDIO_MIMETYPE)
