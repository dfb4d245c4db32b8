"""
Bank providers, statement formats and format detection.

The detector never fails: anything it cannot place is treated as a
generic CSV export.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class BankProvider(str, Enum):
    # CEMAC
    AFRILAND_FIRST_BANK = "AFRILAND_FIRST_BANK"
    BICEC = "BICEC"
    ECOBANK_CEMAC = "ECOBANK_CEMAC"
    SCB_CAMEROUN = "SCB_CAMEROUN"
    SGBC = "SGBC"
    UBA_CAMEROUN = "UBA_CAMEROUN"
    # UEMOA
    BOA = "BOA"
    CORIS_BANK = "CORIS_BANK"
    ECOBANK_UEMOA = "ECOBANK_UEMOA"
    NSIA_BANQUE = "NSIA_BANQUE"
    ORABANK = "ORABANK"
    BRIDGE_BANK = "BRIDGE_BANK"
    # pan-African
    UBA_GROUP = "UBA_GROUP"
    STANDARD_BANK = "STANDARD_BANK"

    GENERIC = "GENERIC"

    @classmethod
    def from_value(cls, value: Union["BankProvider", str, None]) -> "BankProvider":
        """Accepts an enum member, its name, or None. Unknown banks are GENERIC."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.GENERIC
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            logger.debug("Unknown bank provider %r, using GENERIC", value)
            return cls.GENERIC

    @property
    def display_name(self) -> str:
        return PROVIDER_DETAILS[self][0]

    @property
    def zone(self) -> str:
        return PROVIDER_DETAILS[self][1]


PROVIDER_DETAILS: Dict[BankProvider, Tuple[str, str]] = {
    BankProvider.AFRILAND_FIRST_BANK: ("Afriland First Bank", "CEMAC"),
    BankProvider.BICEC: ("BICEC", "CEMAC"),
    BankProvider.ECOBANK_CEMAC: ("Ecobank", "CEMAC"),
    BankProvider.SCB_CAMEROUN: ("Société Commerciale de Banque", "CEMAC"),
    BankProvider.SGBC: ("Société Générale de Banques au Cameroun", "CEMAC"),
    BankProvider.UBA_CAMEROUN: ("United Bank for Africa", "CEMAC"),
    BankProvider.BOA: ("Bank of Africa", "UEMOA"),
    BankProvider.CORIS_BANK: ("Coris Bank International", "UEMOA"),
    BankProvider.ECOBANK_UEMOA: ("Ecobank", "UEMOA"),
    BankProvider.NSIA_BANQUE: ("NSIA Banque", "UEMOA"),
    BankProvider.ORABANK: ("Orabank", "UEMOA"),
    BankProvider.BRIDGE_BANK: ("Bridge Bank Group", "UEMOA"),
    BankProvider.UBA_GROUP: ("United Bank for Africa", "PANAFRICAIN"),
    BankProvider.STANDARD_BANK: ("Standard Bank", "PANAFRICAIN"),
    BankProvider.GENERIC: ("Format CSV Générique", "GENERIC"),
}


class StatementFormat(str, Enum):
    OFX = "OFX"
    MT940 = "MT940"
    CAMT_053 = "CAMT_053"
    QIF = "QIF"
    CSV_GENERIC = "CSV_GENERIC"
    CSV_AFRILAND = "CSV_AFRILAND"
    CSV_ECOBANK = "CSV_ECOBANK"
    CSV_UBA = "CSV_UBA"
    CSV_SGBC = "CSV_SGBC"

    @property
    def extensions(self) -> Tuple[str, ...]:
        return FORMAT_EXTENSIONS[self]

    @property
    def is_csv(self) -> bool:
        return self.value.startswith("CSV_")

    @property
    def is_xml(self) -> bool:
        return self in (StatementFormat.OFX, StatementFormat.CAMT_053)

    def matches_filename(self, filename: Optional[str]) -> bool:
        if not filename:
            return False
        return filename.lower().endswith(self.extensions)


_CSV_EXTENSIONS = (".csv",)

FORMAT_EXTENSIONS: Dict[StatementFormat, Tuple[str, ...]] = {
    StatementFormat.OFX: (".ofx", ".qfx"),
    StatementFormat.MT940: (".mt940", ".sta", ".txt"),
    StatementFormat.CAMT_053: (".xml", ".camt"),
    StatementFormat.QIF: (".qif",),
    StatementFormat.CSV_GENERIC: _CSV_EXTENSIONS,
    StatementFormat.CSV_AFRILAND: _CSV_EXTENSIONS,
    StatementFormat.CSV_ECOBANK: _CSV_EXTENSIONS,
    StatementFormat.CSV_UBA: _CSV_EXTENSIONS,
    StatementFormat.CSV_SGBC: _CSV_EXTENSIONS,
}

# Extension-only detection. ".txt" is deliberately absent: without a bank
# hint a text file is treated as CSV.
_EXTENSION_TABLE: List[Tuple[Tuple[str, ...], StatementFormat]] = [
    ((".ofx", ".qfx"), StatementFormat.OFX),
    ((".mt940", ".sta"), StatementFormat.MT940),
    ((".qif",), StatementFormat.QIF),
    ((".xml", ".camt"), StatementFormat.CAMT_053),
    ((".csv",), StatementFormat.CSV_GENERIC),
]

_CONTENT_TYPE_TABLE: List[Tuple[str, StatementFormat]] = [
    ("x-ofx", StatementFormat.OFX),
    ("xml", StatementFormat.CAMT_053),
    ("csv", StatementFormat.CSV_GENERIC),
]

_F = StatementFormat
PROVIDER_FORMATS: Dict[BankProvider, List[StatementFormat]] = {
    BankProvider.SGBC: [_F.CAMT_053, _F.MT940, _F.CSV_SGBC, _F.CSV_GENERIC],
    BankProvider.AFRILAND_FIRST_BANK: [_F.MT940, _F.CSV_AFRILAND, _F.CSV_GENERIC],
    BankProvider.ECOBANK_CEMAC: [_F.OFX, _F.CSV_ECOBANK, _F.CSV_GENERIC],
    BankProvider.ECOBANK_UEMOA: [_F.OFX, _F.CSV_ECOBANK, _F.CSV_GENERIC],
    BankProvider.UBA_CAMEROUN: [_F.OFX, _F.CSV_UBA, _F.CSV_GENERIC],
    BankProvider.UBA_GROUP: [_F.OFX, _F.CSV_UBA, _F.CSV_GENERIC],
    BankProvider.BOA: [_F.OFX, _F.MT940, _F.CSV_GENERIC],
    BankProvider.STANDARD_BANK: [_F.OFX, _F.MT940, _F.CSV_GENERIC],
    BankProvider.BICEC: [_F.MT940, _F.CSV_GENERIC],
}
_DEFAULT_PROVIDER_FORMATS = [_F.CSV_GENERIC, _F.OFX, _F.QIF]


def supported_formats(provider: Union[BankProvider, str, None]) -> List[StatementFormat]:
    """Formats a bank is known to export, most preferred first."""
    provider = BankProvider.from_value(provider)
    return list(PROVIDER_FORMATS.get(provider, _DEFAULT_PROVIDER_FORMATS))


def format_from_filename(filename: Optional[str], content_type: Optional[str] = None) -> StatementFormat:
    if filename:
        lower = filename.strip().lower()
        for extensions, fmt in _EXTENSION_TABLE:
            if lower.endswith(extensions):
                return fmt
    if content_type:
        ct = content_type.lower()
        for marker, fmt in _CONTENT_TYPE_TABLE:
            if marker in ct:
                return fmt
    return StatementFormat.CSV_GENERIC


def detect_format(filename: Optional[str],
                  content_type: Optional[str] = None,
                  provider: Union[BankProvider, str, None] = None) -> StatementFormat:
    """Pick the statement format for an upload.

    With a bank hint, the bank's preferred formats are intersected with the
    file extension and the first hit wins. Otherwise the extension (then the
    content type) decides. Falls through to CSV_GENERIC.
    """
    by_extension = format_from_filename(filename, content_type)
    provider = BankProvider.from_value(provider)
    if provider is BankProvider.GENERIC:
        return by_extension

    for fmt in supported_formats(provider):
        if fmt.matches_filename(filename):
            logger.debug("Format %s chosen from %s preferences", fmt.value, provider.value)
            return fmt
    return by_extension
