from .base import BaseReceiptParser, ParseSettings, ReceiptParseError
from .card_slip import GenericCardSlipParser
from .convenience import ConvenienceReceiptParser
from .coupang import CoupangReceiptParser
from .delivery import DeliveryReceiptParser
from .mart import MartReceiptParser
from .statement import TransactionStatementParser
from .marketplace import (
    ElevenPostReceiptParser,
    GmarketReceiptParser,
    HeadOfficeCoupangParser,
    HomeplusReceiptParser,
    NaverReceiptParser,
)

__all__ = [
    "BaseReceiptParser",
    "ParseSettings",
    "ReceiptParseError",
    "GenericCardSlipParser",
    "ConvenienceReceiptParser",
    "CoupangReceiptParser",
    "DeliveryReceiptParser",
    "MartReceiptParser",
    "TransactionStatementParser",
    "ElevenPostReceiptParser",
    "GmarketReceiptParser",
    "HeadOfficeCoupangParser",
    "HomeplusReceiptParser",
    "NaverReceiptParser",
]
