from .coupang_card import HeadOfficeCoupangParser
from .eleven_post import ElevenPostReceiptParser
from .gmarket import GmarketReceiptParser
from .homeplus import HomeplusReceiptParser
from .naver import NaverReceiptParser

__all__ = [
    "HeadOfficeCoupangParser",
    "ElevenPostReceiptParser",
    "GmarketReceiptParser",
    "HomeplusReceiptParser",
    "NaverReceiptParser",
]
