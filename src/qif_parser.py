"""
Quicken Interchange Format.

Each record is a run of single-letter field lines closed by "^":
    D date   T/U amount   P payee   M memo   N number   C cleared status
"""

import logging
from decimal import InvalidOperation
from typing import Dict, Optional

from statement_models import NormalizedTransaction, ParseResult
from statement_parser import StatementParser, clean_text, decode_bytes, parse_date, parse_decimal

logger = logging.getLogger(__name__)

DATE_FORMATS = (
    "%d/%m/%Y", "%m/%d/%Y", "%d/%m/%y", "%m/%d/%y",
    "%d-%m-%Y", "%m-%d-%Y", "%d-%m-%y", "%m-%d-%y",
    "%Y-%m-%d",
)


class QifStatementParser(StatementParser):
    format_name = "QIF (Quicken)"
    extensions = (".qif",)

    def _parse(self, data: bytes, result: ParseResult, **options) -> None:
        currency = options.get("default_currency")
        account_number: Optional[str] = None
        in_account_block = False
        fields: Dict[str, str] = {}
        record_no = 0

        def flush():
            nonlocal record_no
            if not fields:
                return
            record_no += 1
            try:
                result.add(self._build_transaction(fields, account_number, currency))
            except (InvalidOperation, ValueError) as e:
                result.skip(f"record #{record_no}: {e}")
            fields.clear()

        for raw_line in decode_bytes(data).splitlines():
            line = raw_line.strip()
            if not line:
                continue

            if line.startswith("!"):
                flush()
                in_account_block = line.lower().startswith("!account")
                continue

            if line == "^":
                if in_account_block:
                    in_account_block = False
                    fields.clear()
                else:
                    flush()
                continue

            code, value = line[0], line[1:].strip()
            if in_account_block:
                if code == "N" and value:
                    account_number = value
                continue

            if code == "U" and "T" in fields:
                continue
            if code in "DTUPMNC":
                fields["T" if code == "U" else code] = value

        flush()

    @staticmethod
    def _build_transaction(fields: Dict[str, str], account_number: Optional[str],
                           currency: Optional[str]) -> NormalizedTransaction:
        raw_date = fields.get("D", "").replace("'", "/").replace(" ", "")
        txn_date = parse_date(raw_date, DATE_FORMATS)
        if txn_date is None:
            raise ValueError(f"missing or invalid date {fields.get('D')!r}")
        if not fields.get("T"):
            raise ValueError("missing amount")
        amount = parse_decimal(fields["T"], decimal_separator=".")

        payee = clean_text(fields.get("P"))
        memo = clean_text(fields.get("M"))
        description = " - ".join(part for part in (payee, memo) if part) or "Transaction"

        return NormalizedTransaction(
            transaction_date=txn_date,
            value_date=txn_date,
            amount=amount,
            description=description,
            bank_reference=fields.get("N") or None,
            counterparty_name=payee,
            account_number=account_number,
            currency=currency,
            additional_info=f"Cleared: {fields['C']}" if fields.get("C") else None,
        )
