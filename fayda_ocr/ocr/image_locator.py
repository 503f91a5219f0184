"""Embedded image location by magic-byte scanning.

eFayda PDFs store their photo, QR code and card crops as raw JPEG
streams, so the images can be found in the document bytes without
parsing the PDF object model. The ordinal position of each image is the
addressing contract used by the rest of the pipeline (see
:class:`fayda_ocr.models.ImageSlot`).
"""

from fayda_ocr.models import LocatedImage
from fayda_ocr.utils.logger import get_logger

logger = get_logger(__name__)

# (format, start marker, end marker)
_MARKERS: list[tuple[str, bytes, bytes]] = [
    ("jpeg", b"\xff\xd8\xff", b"\xff\xd9"),
    ("png", b"\x89PNG\r\n\x1a\n", b"IEND\xaeB`\x82"),
]


def _next_start(data: bytes, offset: int) -> tuple[int, str, bytes, bytes] | None:
    """Find the earliest start marker of any known format at or after ``offset``."""
    best: tuple[int, str, bytes, bytes] | None = None
    for image_format, start_marker, end_marker in _MARKERS:
        pos = data.find(start_marker, offset)
        if pos != -1 and (best is None or pos < best[0]):
            best = (pos, image_format, start_marker, end_marker)
    return best


def scan_image_spans(data: bytes) -> list[tuple[int, int, str]]:
    """Return every ``(start, end, format)`` marker span in byte order.

    Scanning resumes just past each end marker; a start marker without a
    matching end marker ends the scan.
    """
    spans: list[tuple[int, int, str]] = []
    offset = 0

    while offset < len(data):
        found = _next_start(data, offset)
        if found is None:
            break
        start, image_format, start_marker, end_marker = found

        end = data.find(end_marker, start + len(start_marker))
        if end == -1:
            logger.debug("Unterminated %s marker at offset %d", image_format, start)
            break

        end += len(end_marker)
        spans.append((start, end, image_format))
        offset = end

    return spans


def locate_images(
    data: bytes, min_bytes: int = 500, min_count: int = 4
) -> list[LocatedImage]:
    """Locate embedded images in raw document bytes.

    Args:
        data: Raw document bytes.
        min_bytes: Spans shorter than this are discarded; marker bytes
            also occur inside compressed streams.
        min_count: Minimum number of images the schema requires.

    Returns:
        Images in byte-offset order, or an empty list when fewer than
        ``min_count`` images were found.
    """
    images: list[LocatedImage] = []
    for start, end, image_format in scan_image_spans(data):
        if end - start < min_bytes:
            continue
        images.append(
            LocatedImage(
                ordinal=len(images),
                start=start,
                end=end,
                data=data[start:end],
                image_format=image_format,
            )
        )

    if len(images) < min_count:
        logger.warning(
            "Found %d embedded images, schema requires %d", len(images), min_count
        )
        return []

    logger.info(
        "Located %d embedded images (%s)",
        len(images),
        ", ".join(f"#{img.ordinal}:{img.image_format}:{img.size}B" for img in images),
    )
    return images

