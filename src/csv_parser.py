"""
Delimited-text statement exports.

Without a template the layout is read from the header: each column name is
mapped to a role (date, debit, credit, amount...) ignoring case and accents.
Files without a header fall back to date, description, amount, reference.

Bank-specific exports are described by a CsvTemplate handed to parse() as
the `template` option; the parser instance itself holds no layout.
"""

import csv
import logging
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence, Tuple, Union

from statement_models import NormalizedTransaction, ParseResult
from statement_parser import StatementParseError, StatementParser, clean_text, decode_bytes, parse_date, parse_decimal
from text_normalizer import fold_accents

logger = logging.getLogger(__name__)

# dd/MM/yyyy also covers d/M/yyyy; other layouts belong in a CsvTemplate
DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%m/%d/%Y")
DELIMITERS = (",", ";", "\t", "|")

# Checked in order; the first keyword found in a header cell assigns its role.
ROLE_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("value_date", ("valeur", "value")),
    ("date", ("date",)),
    ("debit", ("debit",)),
    ("credit", ("credit",)),
    ("balance", ("solde", "balance")),
    ("amount", ("montant", "amount", "somme")),
    ("reference", ("ref",)),
    ("counterparty", ("tiers", "beneficiaire", "counterparty", "payee")),
    ("currency", ("devise", "currency")),
    ("description", ("description", "libell", "label", "narration", "details", "motif")),
]

POSITIONAL_LAYOUT = {"date": 0, "description": 1, "amount": 2, "reference": 3}

Column = Union[str, int, None]


@dataclass(frozen=True)
class CsvTemplate:
    """Layout of one bank's CSV export.

    Columns are header names (matched case- and accent-insensitively) or
    zero-based indexes. Unset columns are resolved from the header.
    """
    name: str = "generic"
    delimiter: Optional[str] = None
    encoding: Optional[str] = None
    has_header: bool = True
    skip_rows: int = 0
    date_column: Column = None
    value_date_column: Column = None
    description_column: Column = None
    amount_column: Column = None
    debit_column: Column = None
    credit_column: Column = None
    reference_column: Column = None
    balance_column: Column = None
    counterparty_column: Column = None
    currency_column: Column = None
    date_formats: Tuple[str, ...] = DATE_FORMATS
    decimal_separator: Optional[str] = None

    @classmethod
    def from_dict(cls, name: str, data: Dict) -> "CsvTemplate":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"CSV template {name!r}: unknown keys {sorted(unknown)}")
        values = dict(data)
        values["name"] = name
        if "date_formats" in values:
            values["date_formats"] = tuple(values["date_formats"])
        return cls(**values)

    def column_overrides(self) -> Dict[str, Column]:
        overrides = {}
        for role, _ in ROLE_KEYWORDS:
            value = getattr(self, f"{role}_column")
            if value is not None:
                overrides[role] = value
        return overrides


DEFAULT_TEMPLATE = CsvTemplate()


def sniff_delimiter(header_line: str) -> str:
    counts = {d: header_line.count(d) for d in DELIMITERS}
    best = max(counts, key=counts.get)
    return best if counts[best] > 0 else ","


def map_header(header: Sequence[str]) -> Dict[str, int]:
    roles: Dict[str, int] = {}
    for index, cell in enumerate(header):
        name = fold_accents(cell).strip()
        if not name:
            continue
        for role, keywords in ROLE_KEYWORDS:
            if role not in roles and any(k in name for k in keywords):
                roles[role] = index
                break
    return roles


def _resolve_column(column: Column, header: Optional[Sequence[str]]) -> Optional[int]:
    if isinstance(column, int):
        return column
    if header is None:
        raise ValueError(f"column {column!r} given by name but the file has no header")
    wanted = fold_accents(column).strip()
    for index, cell in enumerate(header):
        if fold_accents(cell).strip() == wanted:
            return index
    raise ValueError(f"column {column!r} not found in header")


def resolve_layout(header: Optional[Sequence[str]], template: CsvTemplate) -> Dict[str, int]:
    """Role -> column index: template columns, then header names, then position."""
    overrides = {role: _resolve_column(column, header) for role, column in template.column_overrides().items()}
    detected = map_header(header) if header is not None else {}
    layout = {role: index for role, index in detected.items()
              if role not in overrides and index not in overrides.values()}
    layout.update(overrides)

    taken = set(layout.values())
    if "date" not in layout:
        for role, index in POSITIONAL_LAYOUT.items():
            if role not in layout and index not in taken:
                layout[role] = index
    elif not any(r in layout for r in ("amount", "debit", "credit")) and POSITIONAL_LAYOUT["amount"] not in taken:
        layout["amount"] = POSITIONAL_LAYOUT["amount"]
    return layout


def is_header_row(row: Sequence[str], template: CsvTemplate) -> bool:
    """A header names columns: a known role or a column the template asks for by name."""
    if not row or parse_date(row[0], template.date_formats) is not None:
        return False
    if map_header(row):
        return True
    cells = {fold_accents(cell).strip() for cell in row}
    return any(isinstance(column, str) and fold_accents(column).strip() in cells
               for column in template.column_overrides().values())


def _cell(row: Sequence[str], index: Optional[int]) -> str:
    if index is None or index >= len(row):
        return ""
    return row[index].strip()


class CsvStatementParser(StatementParser):
    format_name = "CSV"
    extensions = (".csv",)

    def _parse(self, data: bytes, result: ParseResult, **options) -> None:
        template: CsvTemplate = options.get("template") or DEFAULT_TEMPLATE
        currency = options.get("default_currency")
        if template is not DEFAULT_TEMPLATE:
            result.format_name = f"{self.format_name} ({template.name})"

        lines = decode_bytes(data, template.encoding).splitlines()[template.skip_rows:]
        while lines and not lines[0].strip():
            lines.pop(0)
        if not lines:
            logger.warning("CSV file %s is empty", result.filename or "<stream>")
            return

        delimiter = template.delimiter or sniff_delimiter(lines[0])
        rows = list(csv.reader(lines, delimiter=delimiter))

        header: Optional[List[str]] = None
        if template.has_header and rows and is_header_row(rows[0], template):
            header = rows.pop(0)
        try:
            layout = resolve_layout(header, template)
        except ValueError as e:
            raise StatementParseError(result.format_name, str(e)) from e
        logger.debug("CSV layout (delimiter %r): %s", delimiter, layout)

        first_row = template.skip_rows + (2 if header is not None else 1)
        for row_no, row in enumerate(rows, start=first_row):
            if not any(cell.strip() for cell in row):
                continue
            try:
                txn = self._build_transaction(row, layout, template, currency)
            except (InvalidOperation, ValueError) as e:
                result.skip(f"row {row_no}: {e}")
                continue
            result.add(txn)

    @staticmethod
    def _amount(row: Sequence[str], layout: Dict[str, int], template: CsvTemplate) -> Decimal:
        sep = template.decimal_separator
        if "debit" in layout and "credit" in layout:
            raw_debit, raw_credit = _cell(row, layout["debit"]), _cell(row, layout["credit"])
            if not raw_debit and not raw_credit:
                raise ValueError("empty debit and credit")
            debit = abs(parse_decimal(raw_debit, sep)) if raw_debit else Decimal("0")
            credit = abs(parse_decimal(raw_credit, sep)) if raw_credit else Decimal("0")
            return credit - debit

        raw = _cell(row, layout.get("amount"))
        if raw:
            return parse_decimal(raw, sep)
        # a single debit or credit column
        if "debit" in layout and _cell(row, layout["debit"]):
            return -abs(parse_decimal(_cell(row, layout["debit"]), sep))
        if "credit" in layout and _cell(row, layout["credit"]):
            return abs(parse_decimal(_cell(row, layout["credit"]), sep))
        raise ValueError("empty amount")

    def _build_transaction(self, row: Sequence[str], layout: Dict[str, int], template: CsvTemplate,
                           currency: Optional[str]) -> NormalizedTransaction:
        raw_date = _cell(row, layout.get("date"))
        txn_date = parse_date(raw_date, template.date_formats)
        if txn_date is None:
            raise ValueError(f"invalid date {raw_date!r}")
        amount = self._amount(row, layout, template)

        balance = None
        raw_balance = _cell(row, layout.get("balance"))
        if raw_balance:
            try:
                balance = parse_decimal(raw_balance, template.decimal_separator)
            except InvalidOperation:
                logger.debug("Ignoring unparsable balance %r", raw_balance)

        return NormalizedTransaction(
            transaction_date=txn_date,
            value_date=parse_date(_cell(row, layout.get("value_date")), template.date_formats) or txn_date,
            amount=amount,
            description=clean_text(_cell(row, layout.get("description"))) or "Transaction",
            bank_reference=_cell(row, layout.get("reference")) or None,
            counterparty_name=clean_text(_cell(row, layout.get("counterparty"))),
            currency=_cell(row, layout.get("currency")) or currency,
            balance_after=balance,
        )
