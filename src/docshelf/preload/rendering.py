"""Thin wrapper over PyMuPDF for document previews.

Only page count, first page size and a small first-page thumbnail are ever
needed, so this is all the PDF library surface the package uses.
"""

from __future__ import annotations

from pathlib import Path

import fitz  # PyMuPDF


class PdfDocument:
    """An open PDF document."""

    def __init__(self, doc: fitz.Document) -> None:
        self._doc = doc

    def __enter__(self) -> "PdfDocument":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def page_count(self) -> int:
        return len(self._doc)

    def first_page_size(self) -> tuple[int, int]:
        rect = self._doc[0].rect
        return int(rect.width), int(rect.height)

    def render_thumbnail(self, width: int) -> bytes:
        """Render the first page ``width`` pixels wide as PNG bytes."""
        page = self._doc[0]
        page_width = page.rect.width or 1
        zoom = width / page_width
        pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        return pixmap.tobytes("png")

    def close(self) -> None:
        self._doc.close()


def open_document(path: Path) -> PdfDocument:
    return PdfDocument(fitz.open(path))
