"""
Common contract for bank statement parsers.

Every format parser turns raw bytes into NormalizedTransaction records.
Parsing is best-effort per record: a broken line is skipped and counted in
the ParseResult, only a broken container raises StatementParseError.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import BinaryIO, Iterable, List, Optional, Union

from statement_models import NormalizedTransaction, ParseResult

logger = logging.getLogger(__name__)

StatementSource = Union[bytes, bytearray, BinaryIO]


class StatementParseError(ValueError):
    """The file as a whole cannot be read in the expected format."""

    def __init__(self, format_name: str, message: str):
        super().__init__(f"{format_name}: {message}")
        self.format_name = format_name


def read_source(source: StatementSource) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if hasattr(source, "read"):
        return source.read()
    raise TypeError(f"expected bytes or a binary stream, got {type(source).__name__}")


def decode_bytes(data: bytes, encoding: Optional[str] = None) -> str:
    """UTF-8 (BOM tolerated) first, Latin-1 as the catch-all."""
    if encoding:
        return data.decode(encoding, errors="replace")
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


_AMOUNT_NOISE = re.compile(r"[^0-9,.\-+()]")


def parse_decimal(raw: Optional[str], decimal_separator: Optional[str] = None) -> Decimal:
    """Parse a bank amount string.

    Whitespace and currency labels are dropped, "(123)" is negative. When
    both separators appear the right-most one is the decimal mark; a lone
    comma is a decimal mark unless decimal_separator says otherwise.
    Raises InvalidOperation for anything that is not a number.
    """
    if raw is None:
        raise InvalidOperation("empty amount")
    cleaned = _AMOUNT_NOISE.sub("", raw)
    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1]
    if "(" in cleaned or ")" in cleaned or not cleaned:
        raise InvalidOperation(f"invalid amount {raw!r}")

    if decimal_separator == ".":
        cleaned = cleaned.replace(",", "")
    elif decimal_separator == ",":
        cleaned = cleaned.replace(".", "").replace(",", ".")
    elif "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    else:
        cleaned = cleaned.replace(",", ".")

    value = Decimal(cleaned)
    if not value.is_finite():
        raise InvalidOperation(f"invalid amount {raw!r}")
    return -value if negative else value


def parse_date(raw: Optional[str], formats: Iterable[str]) -> Optional[date]:
    """First matching format wins; None when nothing matches."""
    if not raw or not raw.strip():
        return None
    value = raw.strip()
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = re.sub(r"\s+", " ", value).strip()
    return value or None


class StatementParser(ABC):
    """Base class for one statement format.

    Subclasses implement _parse() and keep all running state in locals, so
    a single instance can be shared between threads.
    """

    format_name: str = ""
    extensions: tuple = ()

    def parse(self, source: StatementSource, filename: str = "", **options) -> List[NormalizedTransaction]:
        return self.parse_report(source, filename, **options).transactions

    def parse_report(self, source: StatementSource, filename: str = "", **options) -> ParseResult:
        """Parse and return the transactions with the skipped-record report.

        Options:
            default_currency: currency applied when the file carries none
            template: CsvTemplate describing a bank CSV layout (CSV only)
        """
        logger.info("Parsing %s file: %s", self.format_name, filename or "<stream>")
        data = read_source(source)
        result = ParseResult(format_name=self.format_name, filename=filename or "")
        self._parse(data, result, **options)
        logger.info("%s parsing completed: %d transactions, %d skipped",
                    self.format_name, len(result.transactions), result.skipped)
        return result

    def supports(self, filename: Optional[str], content_type: Optional[str] = None) -> bool:
        if not filename:
            return False
        return filename.lower().endswith(self.extensions)

    @abstractmethod
    def _parse(self, data: bytes, result: ParseResult, **options) -> None:
        ...

    def __repr__(self):
        return f"<{type(self).__name__} {self.format_name}>"
