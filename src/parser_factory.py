"""
Parser selection.

One shared instance per format. Parsers keep no per-call state, so the
factory can hand the same object to concurrent callers.
"""

import logging
from typing import Dict, List, Optional, Union

from bank_formats import BankProvider, StatementFormat, detect_format
from bank_formats import supported_formats as provider_formats
from camt053_parser import Camt053StatementParser
from config_loader import load_recon_config
from csv_parser import CsvStatementParser, CsvTemplate
from mt940_parser import Mt940StatementParser
from ofx_parser import OfxStatementParser
from qif_parser import QifStatementParser
from statement_models import ParseResult
from statement_parser import StatementParser, StatementSource

logger = logging.getLogger(__name__)


class ParserFactory:
    def __init__(self, config: Optional[Dict] = None):
        self.config = config if config is not None else load_recon_config()
        self.ofx = OfxStatementParser()
        self.mt940 = Mt940StatementParser()
        self.camt053 = Camt053StatementParser()
        self.qif = QifStatementParser()
        self.csv = CsvStatementParser()
        self._by_format: Dict[StatementFormat, StatementParser] = {
            StatementFormat.OFX: self.ofx,
            StatementFormat.MT940: self.mt940,
            StatementFormat.CAMT_053: self.camt053,
            StatementFormat.QIF: self.qif,
        }
        self.templates = self._load_templates(self.config.get("csv_templates") or {})

    @staticmethod
    def _load_templates(raw: Dict) -> Dict[StatementFormat, CsvTemplate]:
        templates = {}
        for name, data in raw.items():
            fmt = StatementFormat(name)
            if not fmt.is_csv:
                raise ValueError(f"CSV template configured for non-CSV format {name}")
            templates[fmt] = CsvTemplate.from_dict(name, data or {})
        return templates

    def parser_for(self, fmt: StatementFormat) -> StatementParser:
        return self._by_format.get(fmt, self.csv)

    def get_parser(self, filename: Optional[str], content_type: Optional[str] = None,
                   provider: Union[BankProvider, str, None] = None) -> StatementParser:
        fmt = detect_format(filename, content_type, provider)
        parser = self.parser_for(fmt)
        if parser is not self.csv and not parser.supports(filename, content_type):
            logger.warning("%s parser rejected %s, falling back to CSV", parser.format_name, filename)
            return self.csv
        logger.info("Selected %s parser for %s", parser.format_name, filename)
        return parser

    def detect_parser(self, filename: Optional[str], content_type: Optional[str] = None) -> StatementParser:
        """Ask each parser in turn; CSV takes whatever nobody claims."""
        for parser in (self.ofx, self.camt053, self.mt940, self.qif, self.csv):
            if parser.supports(filename, content_type):
                return parser
        logger.warning("No parser claims %s (%s), using CSV", filename, content_type)
        return self.csv

    def all_parsers(self) -> List[StatementParser]:
        return [self.ofx, self.mt940, self.camt053, self.qif, self.csv]

    def supported_formats(self, provider: Union[BankProvider, str, None]) -> List[StatementFormat]:
        return provider_formats(provider)

    def parse_statement(self, data: StatementSource, filename: str, content_type: Optional[str] = None,
                        provider: Union[BankProvider, str, None] = None) -> ParseResult:
        fmt = detect_format(filename, content_type, provider)
        parser = self.get_parser(filename, content_type, provider)
        options = {"default_currency": self.config.get("parsing", {}).get("default_currency")}
        if parser is self.csv and fmt in self.templates:
            options["template"] = self.templates[fmt]
        return parser.parse_report(data, filename, **options)
