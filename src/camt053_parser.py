"""
CAMT.053 (ISO 20022 bank-to-customer statement), used by SGBC.

Banks declare different namespace versions (camt.053.001.02, .04, .08...),
so every lookup matches on the local tag name only.
"""

import logging
import xml.etree.ElementTree as ET
from decimal import InvalidOperation
from typing import Iterator, Optional

from statement_models import NormalizedTransaction, ParseResult
from statement_parser import StatementParseError, StatementParser, clean_text, parse_date, parse_decimal

logger = logging.getLogger(__name__)

DATE_FORMATS = ("%Y-%m-%d",)


def local_name(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].split(":")[-1]


def iter_local(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Descendants (excluding element itself) whose local name is name."""
    for child in element.iter():
        if child is not element and local_name(child.tag) == name:
            yield child


def find_local(element: Optional[ET.Element], *path: str) -> Optional[ET.Element]:
    """Follow path, taking the first matching descendant at each step."""
    current = element
    for name in path:
        if current is None:
            return None
        current = next(iter_local(current, name), None)
    return current


def text_local(element: Optional[ET.Element], *path: str) -> str:
    found = find_local(element, *path)
    if found is None or found.text is None:
        return ""
    return found.text.strip()


def child_local(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if local_name(child.tag) == name:
            return child
    return None


class Camt053StatementParser(StatementParser):
    format_name = "CAMT.053 (ISO 20022)"
    extensions = (".xml", ".camt")

    def supports(self, filename: Optional[str], content_type: Optional[str] = None) -> bool:
        if filename and filename.lower().endswith(self.extensions):
            return True
        return content_type is not None and "xml" in content_type.lower()

    def _parse(self, data: bytes, result: ParseResult, **options) -> None:
        try:
            root = ET.fromstring(data)
        except ET.ParseError as e:
            raise StatementParseError(self.format_name, f"malformed XML: {e}") from e

        default_currency = options.get("default_currency")
        account_number = self.extract_account_number(root)

        for index, entry in enumerate(iter_local(root, "Ntry"), start=1):
            try:
                txn = self._parse_entry(entry, account_number, default_currency)
            except (InvalidOperation, ValueError) as e:
                result.skip(f"Ntry #{index}: {e}")
                continue
            result.add(txn)

    @staticmethod
    def extract_account_number(root: ET.Element) -> Optional[str]:
        acct = find_local(root, "Acct")
        if acct is None:
            return None
        iban = text_local(acct, "IBAN")
        if iban:
            return iban
        return text_local(acct, "Othr", "Id") or None

    @staticmethod
    def _parse_date(element: Optional[ET.Element]):
        if element is None:
            return None
        raw = text_local(element, "Dt") or text_local(element, "DtTm")[:10]
        return parse_date(raw, DATE_FORMATS)

    def _parse_entry(self, entry: ET.Element, account_number: Optional[str],
                     default_currency: Optional[str]) -> NormalizedTransaction:
        booking_date = self._parse_date(find_local(entry, "BookgDt"))
        if booking_date is None:
            raise ValueError("missing or invalid BookgDt")
        value_date = self._parse_date(find_local(entry, "ValDt")) or booking_date

        amt = child_local(entry, "Amt")
        if amt is None:
            amt = find_local(entry, "Amt")
        if amt is None or not (amt.text or "").strip():
            raise ValueError("missing Amt")
        amount = parse_decimal(amt.text.strip(), decimal_separator=".")

        indicator = child_local(entry, "CdtDbtInd")
        if indicator is None:
            indicator = find_local(entry, "CdtDbtInd")
        if indicator is not None and (indicator.text or "").strip() == "DBIT":
            amount = -amount

        bank_reference = text_local(entry, "AcctSvcrRef") or None

        tx_details = find_local(entry, "NtryDtls", "TxDtls")
        counterparty = ""
        description = ""
        if tx_details is not None:
            parties = find_local(tx_details, "RltdPties")
            if parties is not None:
                counterparty = text_local(parties, "Cdtr", "Nm") or text_local(parties, "Dbtr", "Nm")
            description = text_local(tx_details, "RmtInf", "Ustrd") or text_local(tx_details, "AddtlTxInf")
        entry_info = text_local(entry, "AddtlNtryInf")
        if not description:
            description = entry_info

        return NormalizedTransaction(
            transaction_date=booking_date,
            value_date=value_date,
            amount=amount,
            description=clean_text(description) or "Transaction",
            bank_reference=bank_reference,
            counterparty_name=clean_text(counterparty),
            account_number=account_number,
            currency=amt.get("Ccy") or default_currency,
            additional_info=clean_text(entry_info),
        )
