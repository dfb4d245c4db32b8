import re
import unicodedata
from typing import Optional


def fold_accents(text: Optional[str]) -> str:
    """'Crédit' -> 'credit'"""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, accents folded, punctuation removed. Inner spacing is kept."""
    return re.sub(r"[^0-9a-z\s]", "", fold_accents(text).strip())


def text_similarity(a: Optional[str], b: Optional[str]) -> float:
    """1.0 when equal, 0.8 when one contains the other, else word-set Jaccard."""
    na, nb = normalize_text(a), normalize_text(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    if na in nb or nb in na:
        return 0.8
    words_a, words_b = set(na.split()), set(nb.split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)
