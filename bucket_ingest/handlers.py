"""Content handler implementations plugged into the batch pipeline."""

from __future__ import annotations

import logging
import struct
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple, Type

from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader
from pypdf.errors import PdfReadError, PdfStreamError

from .config import DEFAULT_CSV_LINE_CAP, DEFAULT_PREVIEW_CHARS, DEFAULT_SUFFIXES, HandlerConfig
from .errors import ProcessingError, UnsupportedContent
from .interfaces import ContentHandler
from .models import ProcessingReport, StagedObject

logger = logging.getLogger(__name__)


def iter_lines(path: Path, limit: Optional[int] = None) -> Iterator[str]:
    """Yield UTF-8 lines of ``path`` without line endings, at most ``limit`` of them.

    Each call opens the file again, so the sequence restarts from the top.
    """
    if limit is not None and limit <= 0:
        return
    with open(path, "r", encoding="utf-8", newline="") as fh:
        for count, line in enumerate(fh, start=1):
            yield line.rstrip("\r\n")
            if limit is not None and count >= limit:
                return


class TabularTextHandler(ContentHandler):
    name = "csv"
    suffixes = DEFAULT_SUFFIXES["csv"]

    def __init__(
        self,
        line_cap: Optional[int] = DEFAULT_CSV_LINE_CAP,
        suffixes: Optional[Tuple[str, ...]] = None,
    ) -> None:
        # Lines past the cap are not inspected; None inspects the whole file.
        self.line_cap = line_cap
        if suffixes:
            self.suffixes = suffixes

    def process(self, staged: StagedObject) -> ProcessingReport:
        logger.info("Starting CSV content processing for: %s", staged.local_path)
        inspected = 0
        truncated = False
        # One line past the cap is read only to tell whether anything was cut off.
        limit = None if self.line_cap is None else self.line_cap + 1
        try:
            for number, line in enumerate(iter_lines(staged.local_path, limit), start=1):
                if self.line_cap is not None and number > self.line_cap:
                    truncated = True
                    break
                inspected = number
                logger.debug("CSV Line %d: %s", number, line)
        except UnicodeDecodeError as e:
            raise UnsupportedContent(f"Not UTF-8 text: {e}", key=staged.key) from e
        except OSError as e:
            raise ProcessingError(f"I/O error reading CSV: {e}", key=staged.key) from e

        if truncated:
            logger.info("Stopped inspecting %s after %d lines", staged.key, self.line_cap)
        logger.info("Finished CSV content parsing for: %s", staged.local_path)
        return ProcessingReport(
            handler=self.name,
            details={"lines_inspected": inspected, "truncated": truncated},
        )


class RasterImageHandler(ContentHandler):
    name = "image"
    suffixes = DEFAULT_SUFFIXES["image"]

    def __init__(self, suffixes: Optional[Tuple[str, ...]] = None) -> None:
        if suffixes:
            self.suffixes = suffixes

    def process(self, staged: StagedObject) -> ProcessingReport:
        logger.info("Reading image from path: %s", staged.local_path)
        if not staged.local_path.is_file():
            raise ProcessingError("Staged image is missing", key=staged.key)
        try:
            with Image.open(staged.local_path) as image:
                image.load()
                width, height = image.size
                image_format = image.format
        # Pillow reports truncated pixel data as a plain OSError; some corrupt
        # headers surface as ValueError, struct.error or IndexError.
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            SyntaxError,
            OSError,
            ValueError,
            struct.error,
            IndexError,
        ) as e:
            raise UnsupportedContent(f"Unsupported or corrupt image format: {e}", key=staged.key) from e

        logger.info("Image read successfully. Dimensions: %dx%d", width, height)
        return ProcessingReport(
            handler=self.name,
            details={"width": width, "height": height, "format": image_format},
        )


class DocumentTextHandler(ContentHandler):
    name = "pdf"
    suffixes = DEFAULT_SUFFIXES["pdf"]

    def __init__(
        self,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
        suffixes: Optional[Tuple[str, ...]] = None,
    ) -> None:
        self.preview_chars = preview_chars
        if suffixes:
            self.suffixes = suffixes

    def process(self, staged: StagedObject) -> ProcessingReport:
        logger.info("Starting PDF content extraction: %s", staged.local_path)
        try:
            with open(staged.local_path, "rb") as fh:
                reader = PdfReader(fh)
                page_count = len(reader.pages)
                text = "\n".join(page.extract_text() or "" for page in reader.pages)
        except (PdfReadError, PdfStreamError) as e:
            logger.error("Failed to parse PDF: %s", e)
            raise ProcessingError(f"PDF parsing failed: {e}", key=staged.key) from e
        except Exception as e:
            logger.error("Failed to parse PDF: %s", e)
            raise ProcessingError(f"PDF parsing failed ({type(e).__name__}): {e}", key=staged.key) from e

        preview = text[: self.preview_chars]
        logger.info("Extracted text (first %d chars): %s...", self.preview_chars, preview)
        logger.info("Finished PDF content processing for: %s", staged.local_path)
        return ProcessingReport(
            handler=self.name,
            details={"page_count": page_count, "text_length": len(text), "preview": preview},
        )


HANDLER_REGISTRY: Dict[str, Type[ContentHandler]] = {
    "csv": TabularTextHandler,
    "image": RasterImageHandler,
    "pdf": DocumentTextHandler,
}


def build_content_handler(config: HandlerConfig) -> ContentHandler:
    try:
        handler_cls = HANDLER_REGISTRY[config.content_type]
    except KeyError as exc:
        raise ValueError(f"Unknown content type: {config.content_type}") from exc

    suffixes = config.accepted_suffixes()
    if handler_cls is TabularTextHandler:
        return TabularTextHandler(line_cap=config.csv_line_cap, suffixes=suffixes)
    if handler_cls is DocumentTextHandler:
        return DocumentTextHandler(preview_chars=config.preview_chars, suffixes=suffixes)
    return handler_cls(suffixes=suffixes)
