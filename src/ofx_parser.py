"""
OFX / QFX statements (Ecobank, UBA, BOA, Standard Bank, Orabank).

Banks ship either OFX 2.x XML or the older SGML dialect where leaf tags
are never closed. Both are rewritten into well-formed XML before parsing.
"""

import logging
import re
import xml.etree.ElementTree as ET
from decimal import InvalidOperation
from typing import Dict, List, Optional
from xml.sax.saxutils import escape, unescape

from statement_models import NormalizedTransaction, ParseResult
from statement_parser import StatementParseError, StatementParser, clean_text, decode_bytes, parse_date, parse_decimal

logger = logging.getLogger(__name__)

_OFX_ROOT = re.compile(r"<OFX>", re.IGNORECASE)
_OFX_ROOT_BYTES = re.compile(rb"<OFX>", re.IGNORECASE)
_TAG = re.compile(r"<(/?)([A-Za-z0-9_.:]+)\s*>([^<]*)")
_XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


def _sgml_to_xml(content: str) -> str:
    """Rebuild the tag stream as XML, closing SGML leaf elements."""
    tokens = [(m.group(1) == "/", m.group(2).upper(), m.group(3)) for m in _TAG.finditer(content)]

    closing_positions: Dict[str, List[int]] = {}
    for i, (is_close, tag, _) in enumerate(tokens):
        if is_close:
            closing_positions.setdefault(tag, []).append(i)

    def closed_later(tag: str, pos: int) -> bool:
        return any(p > pos for p in closing_positions.get(tag, ()))

    parts: List[str] = []
    for i, (is_close, tag, text) in enumerate(tokens):
        if is_close:
            parts.append(f"</{tag}>")
            continue
        value = text.strip()
        next_token = tokens[i + 1] if i + 1 < len(tokens) else None
        closes_next = next_token is not None and next_token[0] and next_token[1] == tag
        if value:
            body = escape(unescape(value))
            parts.append(f"<{tag}>{body}" if closes_next else f"<{tag}>{body}</{tag}>")
        elif closes_next or closed_later(tag, i):
            parts.append(f"<{tag}>")
        else:
            parts.append(f"<{tag}/>")
    return "".join(parts)


def _text(element: ET.Element, tag: str) -> Optional[str]:
    found = element.find(f".//{tag}")
    if found is None or found.text is None:
        return None
    return found.text.strip() or None


class OfxStatementParser(StatementParser):
    format_name = "OFX (Open Financial Exchange)"
    extensions = (".ofx", ".qfx")

    DATE_FORMATS = ("%Y%m%d",)

    def to_xml(self, content: str) -> str:
        """Strip the OFX header block and return parseable XML."""
        match = _OFX_ROOT.search(content)
        if match is None:
            raise StatementParseError(self.format_name, "no <OFX> root element found")
        return _XML_DECLARATION + _sgml_to_xml(content[match.start():])

    def _parse(self, data: bytes, result: ParseResult, **options) -> None:
        # decode from the root on: preamble bytes must not decide the charset
        root_match = _OFX_ROOT_BYTES.search(data)
        if root_match is not None:
            data = data[root_match.start():]
        xml_content = self.to_xml(decode_bytes(data))
        try:
            root = ET.fromstring(xml_content.encode("utf-8"))
        except ET.ParseError as e:
            raise StatementParseError(self.format_name, f"malformed document: {e}") from e

        account_number = _text(root, "ACCTID")
        statement_currency = _text(root, "CURDEF") or options.get("default_currency")

        for index, stmt_trn in enumerate(root.iter("STMTTRN"), start=1):
            try:
                txn = self._build_transaction(stmt_trn, account_number, statement_currency)
            except (InvalidOperation, ValueError) as e:
                result.skip(f"STMTTRN #{index}: {e}")
                continue
            result.add(txn)

    def _parse_ofx_date(self, raw: Optional[str]):
        if not raw:
            return None
        return parse_date(raw[:8], self.DATE_FORMATS)

    def _build_transaction(self, stmt_trn: ET.Element, account_number: Optional[str],
                           statement_currency: Optional[str]) -> NormalizedTransaction:
        posted = self._parse_ofx_date(_text(stmt_trn, "DTPOSTED"))
        if posted is None:
            raise ValueError(f"missing or invalid DTPOSTED {_text(stmt_trn, 'DTPOSTED')!r}")
        raw_amount = _text(stmt_trn, "TRNAMT")
        if raw_amount is None:
            raise ValueError("missing TRNAMT")
        amount = parse_decimal(raw_amount)

        name = _text(stmt_trn, "NAME") or _text(stmt_trn, "PAYEE")
        memo = _text(stmt_trn, "MEMO")
        description = " - ".join(part for part in (name, memo) if part) or "Transaction"
        currency = (_text(stmt_trn, "CURSYM") or _text(stmt_trn, "CURRENCY")
                    or _text(stmt_trn, "ORIGCURRENCY") or statement_currency)

        return NormalizedTransaction(
            transaction_date=posted,
            value_date=self._parse_ofx_date(_text(stmt_trn, "DTUSER")) or posted,
            amount=amount,
            description=clean_text(description) or "Transaction",
            bank_reference=_text(stmt_trn, "FITID"),
            counterparty_name=clean_text(name),
            account_number=account_number,
            currency=currency,
            additional_info=clean_text(memo),
        )
