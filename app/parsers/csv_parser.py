"""
app/parsers/csv_parser.py

Line-oriented CSV parsing into canonical rows.

Each physical line is one record. A quoted field is never continued onto the
next line: an unbalanced quote consumes the remainder of its own line only,
and the resulting row is left for the validator to reject. Multi-line quoted
values are therefore not supported.
"""

from __future__ import annotations

import csv
import logging
import re

from app.domain.institution_import import CanonicalRow
from app.mappers.field_mapper import FieldMapper

logger = logging.getLogger(__name__)

_BOM = "\ufeff"
# Only CR, LF and CRLF end a record; other Unicode line separators stay in the cell.
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class CSVStructureError(ValueError):
    """
    Raised when the CSV payload cannot be turned into rows at all.
    """


def split_csv_line(line: str) -> list[str]:
    """
    Split one physical CSV line into raw cell values.

    Double-quoted cells may contain commas, and a doubled quote inside a
    quoted cell decodes to one literal quote.
    """

    reader = csv.reader([line], strict=False, skipinitialspace=False)
    return next(reader, [])


class InstitutionCSVParser:
    """
    Turns CSV text into canonical rows using the header synonym table.
    """

    def __init__(self, *, mapper: FieldMapper | None = None) -> None:
        self._mapper = mapper or FieldMapper()

    def parse(self, csv_text: str | bytes) -> list[CanonicalRow]:
        """
        Parse a whole CSV payload.

        Row numbers are physical line numbers, so the first data line is row 2.
        Whitespace-only lines are skipped but still counted.
        """

        text = self._decode(csv_text)
        lines = _LINE_BREAK.split(text)

        header_index = next((index for index, line in enumerate(lines) if line.strip()), None)
        if header_index is None:
            return []

        columns = self._mapper.map_headers(self._split(lines[header_index], header_index + 1))
        data_lines = [
            (index + 1, line)
            for index, line in enumerate(lines[header_index + 1 :], start=header_index + 1)
            if line.strip()
        ]
        if not data_lines:
            return []

        if not any(columns):
            raise CSVStructureError("CSV header row does not contain any recognized column.")

        rows: list[CanonicalRow] = []
        for row_number, line in data_lines:
            cells = self._split(line, row_number)
            values = {
                canonical_field: cells[position].strip()
                for position, canonical_field in enumerate(columns)
                if canonical_field is not None and position < len(cells)
            }
            if len(cells) > len(columns):
                logger.debug(
                    "CSV row has extra cells row=%s cells=%s columns=%s",
                    row_number,
                    len(cells),
                    len(columns),
                )
            rows.append(CanonicalRow(row_number=row_number, values=values))

        logger.info(
            "Parsed institution CSV rows=%s mapped_columns=%s",
            len(rows),
            sum(1 for column in columns if column),
        )
        return rows

    @staticmethod
    def _decode(csv_text: str | bytes) -> str:
        if isinstance(csv_text, (bytes, bytearray)):
            try:
                return bytes(csv_text).decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise CSVStructureError("CSV must be UTF-8 encoded.") from exc
        return csv_text[1:] if csv_text.startswith(_BOM) else csv_text

    @staticmethod
    def _split(line: str, line_number: int) -> list[str]:
        try:
            return split_csv_line(line)
        except csv.Error as exc:
            raise CSVStructureError(f"Invalid CSV format on line {line_number}: {exc}") from exc
