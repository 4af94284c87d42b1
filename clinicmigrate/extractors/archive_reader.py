"""Reads exported CSV files back for validation."""

import csv
import io
import logging
import re
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

from ..exceptions import ArchiveReadError

logger = logging.getLogger(__name__)

ORDER_PREFIX = re.compile(r"^\d+_")

ParsedRows = List[Dict[str, str]]


def table_name_from_path(path: str) -> str:
    """``data/05_rooms.csv`` -> ``rooms``."""
    stem = Path(path).stem
    return ORDER_PREFIX.sub("", stem)


class ArchiveReader:
    """
    Loads CSV table files from an export archive or a single CSV file.

    Every value is kept as a string; NULL comes back as an empty string,
    which the validator treats as "no reference". Rows whose field count
    differs from the header are skipped and reported as warnings.
    ``line_numbers`` holds, per table, the file line each kept row starts on.
    """

    def __init__(self, encoding: str = "utf-8-sig"):
        self.encoding = encoding
        self.warnings: List[str] = []
        self.line_numbers: Dict[str, List[int]] = {}

    def read(self, path: str) -> Dict[str, ParsedRows]:
        """
        Read a ``.zip`` export or a loose ``.csv`` file.

        Args:
            path: File path

        Returns:
            Table name -> rows

        Raises:
            ArchiveReadError: If the file is missing or unreadable
        """
        self.warnings = []
        self.line_numbers = {}
        file_path = Path(path)

        try:
            if file_path.suffix.lower() == ".zip":
                tables = self._read_zip(file_path)
            elif file_path.suffix.lower() == ".csv":
                text = file_path.read_text(encoding=self.encoding)
                name = table_name_from_path(file_path.name)
                tables = {name: self.parse_csv(text, file_path.name, self.line_numbers.setdefault(name, []))}
            else:
                raise ValueError(f"unsupported file type {file_path.suffix or '(none)'}")
        except (OSError, ValueError, zipfile.BadZipFile, csv.Error) as e:
            raise ArchiveReadError(str(path), e) from e

        logger.info(f"Read {len(tables)} tables from {path} ({len(self.warnings)} warnings)")
        return tables

    def _read_zip(self, file_path: Path) -> Dict[str, ParsedRows]:
        tables: Dict[str, ParsedRows] = {}
        with zipfile.ZipFile(file_path) as zf:
            for member in sorted(zf.namelist()):
                if not member.lower().endswith(".csv"):
                    continue
                text = zf.read(member).decode(self.encoding)
                name = table_name_from_path(member)
                self.line_numbers[name] = []
                tables[name] = self.parse_csv(text, member, self.line_numbers[name])
        return tables

    def parse_csv(self, text: str, source: str = "<csv>", line_numbers: Optional[List[int]] = None) -> ParsedRows:
        """
        Parse CSV text into rows of string values.

        Args:
            text: CSV text
            source: Name used in warnings
            line_numbers: Receives the starting file line of each kept row;
                quoted values may span several lines
        """
        text = text.lstrip("\ufeff")
        if not text.strip():
            return []

        reader = csv.reader(io.StringIO(text, newline=""))
        header = next(reader)
        rows: ParsedRows = []
        end = reader.line_num

        for fields in reader:
            start, end = end + 1, reader.line_num
            if not fields:
                continue
            if len(fields) != len(header):
                message = (
                    f"{source}: line {start} has {len(fields)} fields, "
                    f"expected {len(header)}; row skipped"
                )
                self.warnings.append(message)
                logger.warning(message)
                continue
            rows.append(dict(zip(header, fields)))
            if line_numbers is not None:
                line_numbers.append(start)

        return rows
