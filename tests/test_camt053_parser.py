import sys
import os
from datetime import date
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from camt053_parser import Camt053StatementParser, local_name
from statement_parser import StatementParseError


def camt(entries: str, namespace: str = "urn:iso:std:iso:20022:tech:xsd:camt.053.001.02",
         account: str = "<IBAN>CM2110001000010000000000001</IBAN>") -> bytes:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Document xmlns="{namespace}">
  <BkToCstmrStmt>
    <GrpHdr><MsgId>MSG1</MsgId><CreDtTm>2024-03-05T08:00:00</CreDtTm></GrpHdr>
    <Stmt>
      <Id>STMT1</Id>
      <Acct><Id>{account}</Id><Ccy>XAF</Ccy></Acct>
      {entries}
    </Stmt>
  </BkToCstmrStmt>
</Document>
""".encode("utf-8")


DEBIT_ENTRY = """
<Ntry>
  <Amt Ccy="XAF">1000.00</Amt>
  <CdtDbtInd>DBIT</CdtDbtInd>
  <Sts>BOOK</Sts>
  <BookgDt><Dt>2024-03-01</Dt></BookgDt>
  <ValDt><Dt>2024-03-02</Dt></ValDt>
  <AcctSvcrRef>SGBC-REF-1</AcctSvcrRef>
  <NtryDtls><TxDtls>
    <AmtDtls><InstdAmt><Amt Ccy="EUR">1.52</Amt></InstdAmt></AmtDtls>
    <RltdPties><Cdtr><Nm>Fournisseur SA</Nm></Cdtr><Dbtr><Nm>Ma Societe</Nm></Dbtr></RltdPties>
    <RmtInf><Ustrd>Facture 2024-042</Ustrd></RmtInf>
  </TxDtls></NtryDtls>
</Ntry>
"""

CREDIT_ENTRY = """
<Ntry>
  <Amt Ccy="XAF">2500.50</Amt>
  <CdtDbtInd>CRDT</CdtDbtInd>
  <BookgDt><DtTm>2024-03-03T10:15:00</DtTm></BookgDt>
  <NtryDtls><TxDtls>
    <RltdPties><Dbtr><Nm>Client Alpha</Nm></Dbtr></RltdPties>
    <AddtlTxInf>Reglement commande 77</AddtlTxInf>
  </TxDtls></NtryDtls>
  <AddtlNtryInf>VIREMENT RECU</AddtlNtryInf>
</Ntry>
"""

BARE_ENTRY = """
<Ntry>
  <Amt Ccy="XAF">300</Amt>
  <CdtDbtInd>CRDT</CdtDbtInd>
  <BookgDt><Dt>2024-03-04</Dt></BookgDt>
</Ntry>
"""


@pytest.fixture
def parser():
    return Camt053StatementParser()


def test_parse_entries(parser):
    txns = parser.parse(camt(DEBIT_ENTRY + CREDIT_ENTRY + BARE_ENTRY), "camt.xml")

    assert len(txns) == 3
    debit, credit, bare = txns

    assert debit.amount == Decimal("-1000.00")
    assert debit.transaction_date == date(2024, 3, 1)
    assert debit.value_date == date(2024, 3, 2)
    assert debit.currency == "XAF"
    assert debit.bank_reference == "SGBC-REF-1"
    assert debit.counterparty_name == "Fournisseur SA"
    assert debit.description == "Facture 2024-042"
    assert debit.account_number == "CM2110001000010000000000001"

    assert credit.amount == Decimal("2500.50")
    assert credit.transaction_date == date(2024, 3, 3)
    assert credit.value_date == date(2024, 3, 3)
    assert credit.counterparty_name == "Client Alpha"
    assert credit.description == "Reglement commande 77"
    assert credit.additional_info == "VIREMENT RECU"

    assert bare.description == "Transaction"
    assert bare.amount == Decimal("300")


@pytest.mark.parametrize("namespace", [
    "urn:iso:std:iso:20022:tech:xsd:camt.053.001.02",
    "urn:iso:std:iso:20022:tech:xsd:camt.053.001.08",
])
def test_namespace_version_does_not_matter(parser, namespace):
    txns = parser.parse(camt(DEBIT_ENTRY, namespace=namespace), "camt.xml")
    assert txns[0].amount == Decimal("-1000.00")


def test_no_namespace(parser):
    data = camt(DEBIT_ENTRY).replace(b' xmlns="urn:iso:std:iso:20022:tech:xsd:camt.053.001.02"', b"")
    assert len(parser.parse(data, "camt.xml")) == 1


def test_account_from_other_id(parser):
    data = camt(BARE_ENTRY, account="<Othr><Id>00012345</Id></Othr>")
    assert parser.parse(data, "camt.xml")[0].account_number == "00012345"


def test_entry_without_booking_date_is_skipped(parser):
    broken = BARE_ENTRY.replace("<BookgDt><Dt>2024-03-04</Dt></BookgDt>", "")
    report = parser.parse_report(camt(DEBIT_ENTRY + broken), "camt.xml")
    assert len(report.transactions) == 1
    assert report.skipped == 1


def test_malformed_xml_raises(parser):
    with pytest.raises(StatementParseError):
        parser.parse(b"<Document><Stmt>", "camt.xml")


def test_local_name():
    assert local_name("{urn:x}Ntry") == "Ntry"
    assert local_name("Ntry") == "Ntry"


def test_supports(parser):
    assert parser.supports("camt.xml")
    assert parser.supports("export.CAMT")
    assert parser.supports(None, "application/xml")
    assert not parser.supports("a.csv", "text/csv")
