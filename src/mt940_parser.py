"""
SWIFT MT940 statements (SGBC, BICEC, Afriland First Bank).

Tags handled:
    :25:   account identification
    :60F:  opening balance (currency)
    :61:   statement line (one transaction)
    :86:   information to account owner, may continue on untagged lines
    :62F:  closing balance
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from statement_models import NormalizedTransaction, ParseResult
from statement_parser import StatementParser, clean_text, decode_bytes, parse_date, parse_decimal

logger = logging.getLogger(__name__)

_TAG_LINE = re.compile(r"^:(\d{2}[A-Z]?):(.*)$")
_BALANCE = re.compile(r"^[CD]\d{6}([A-Z]{3})")
_AMOUNT_CHARS = set("0123456789,.")


@dataclass
class _StatementLine:
    booking_date: date
    amount: Decimal
    indicator: str
    reference: Optional[str]
    account_number: Optional[str]
    currency: Optional[str]
    description: List[str] = field(default_factory=list)

    def to_transaction(self) -> NormalizedTransaction:
        return NormalizedTransaction(
            transaction_date=self.booking_date,
            value_date=self.booking_date,
            amount=self.amount,
            description=clean_text(" ".join(self.description)) or "",
            bank_reference=self.reference,
            account_number=self.account_number,
            currency=self.currency,
            additional_info=f"MT940 {self.indicator}",
        )


def parse_statement_line(content: str) -> _StatementLine:
    """Decode the body of a :61: tag.

    Layout: YYMMDD [MMDD] C|D|RC|RD [funds code] amount reference.
    Raises ValueError when the date, indicator or amount is unusable.
    """
    booking_date = parse_date(content[:6], ("%y%m%d",))
    if booking_date is None:
        raise ValueError(f"invalid value date {content[:6]!r}")

    pos = 6
    if content[pos:pos + 4].isdigit():
        pos += 4

    if content[pos:pos + 2] in ("RC", "RD"):
        indicator = content[pos:pos + 2]
    elif content[pos:pos + 1] in ("C", "D"):
        indicator = content[pos:pos + 1]
    else:
        raise ValueError("no debit/credit indicator")
    pos += len(indicator)

    # optional third currency letter (funds code) right before the amount
    if content[pos:pos + 1].isalpha() and content[pos + 1:pos + 2].isdigit():
        pos += 1

    end = pos
    while end < len(content) and content[end] in _AMOUNT_CHARS:
        end += 1
    raw_amount = content[pos:end]
    if not any(ch.isdigit() for ch in raw_amount):
        raise ValueError("missing amount")
    try:
        amount = parse_decimal(raw_amount)
    except InvalidOperation as e:
        raise ValueError(f"invalid amount {raw_amount!r}") from e

    if indicator in ("D", "RD"):
        amount = -amount

    return _StatementLine(
        booking_date=booking_date,
        amount=amount,
        indicator=indicator,
        reference=content[end:].strip() or None,
        account_number=None,
        currency=None,
    )


class Mt940StatementParser(StatementParser):
    format_name = "MT940 (SWIFT)"
    extensions = (".mt940", ".sta")

    def supports(self, filename: Optional[str], content_type: Optional[str] = None) -> bool:
        if not filename:
            return False
        lower = filename.lower()
        if lower.endswith(self.extensions):
            return True
        return lower.endswith(".txt") and content_type is not None and "text" in content_type.lower()

    def _parse(self, data: bytes, result: ParseResult, **options) -> None:
        account_number: Optional[str] = None
        currency: Optional[str] = options.get("default_currency")
        current: Optional[_StatementLine] = None
        in_information = False

        def flush():
            nonlocal current
            if current is not None:
                result.add(current.to_transaction())
            current = None

        for line_no, raw_line in enumerate(decode_bytes(data).splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith("{") or line == "-" or line.startswith("-}"):
                in_information = False
                continue

            match = _TAG_LINE.match(line)
            if match is None:
                # continuation of the previous :86:
                if in_information and current is not None:
                    current.description.append(line)
                continue

            tag, content = match.group(1), match.group(2).strip()
            in_information = False

            if tag == "25":
                account_number = content or None
                logger.debug("Account number: %s", account_number)
            elif tag.startswith("60"):
                balance = _BALANCE.match(content)
                if balance:
                    currency = balance.group(1)
            elif tag == "61":
                flush()
                try:
                    current = parse_statement_line(content)
                except ValueError as e:
                    result.skip(f"line {line_no}: {e} in {line!r}")
                    continue
                current.account_number = account_number
                current.currency = currency
            elif tag == "86":
                if current is not None:
                    current.description = [content] if content else []
                    in_information = True
            elif tag.startswith("62") or tag == "20":
                flush()

        flush()
