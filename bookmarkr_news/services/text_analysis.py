"""
Lightweight text primitives shared by deduplication and recommendations:
title normalisation, token-set and bigram similarity, and weighted key-term
extraction (tokenise, stem, boost capitalised entities and noun-like words).
"""

import re
from collections import Counter
from typing import Iterable, List, Set

from nltk.stem import PorterStemmer
from nltk.tokenize import RegexpTokenizer

_tokenizer = RegexpTokenizer(r"\w+")
_stemmer = PorterStemmer()

STOPWORDS = {
    "the", "and", "for", "with", "that", "this", "from", "are", "was", "were", "will",
    "has", "have", "had", "but", "not", "you", "your", "our", "its", "his", "her",
    "they", "them", "their", "what", "which", "who", "whom", "how", "why", "when",
    "where", "can", "could", "would", "should", "may", "might", "into", "onto", "over",
    "about", "after", "before", "than", "then", "there", "here", "also", "just", "more",
    "most", "some", "such", "only", "own", "same", "very", "all", "any", "both", "each",
    "few", "other", "out", "off", "via", "new", "says", "said", "been", "being", "does",
    "did", "doing", "these", "those", "because", "while", "until", "against", "between",
}

NOUN_SUFFIXES = ("tion", "ment", "ness", "ity", "ism", "ance", "ence", "er", "ist")
ENTITY_WEIGHT = 3
NOUN_WEIGHT = 2

_CAPITALISED = re.compile(r"^[A-Z][a-zA-Z0-9]+$")


def normalize_title(title: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    text = re.sub(r"[^\w\s]", "", (title or "").lower())
    return " ".join(text.split())


def tokenize(text: str) -> List[str]:
    return _tokenizer.tokenize((text or "").lower())


def stem(word: str) -> str:
    return _stemmer.stem(word)


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    set_a: Set[str] = set(a)
    set_b: Set[str] = set(b)
    if not set_a and not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def _bigrams(text: str) -> Counter:
    compact = re.sub(r"\s+", "", text.lower())
    return Counter(compact[i:i + 2] for i in range(len(compact) - 1))


def dice_similarity(first: str, second: str) -> float:
    """
    Sørensen-Dice coefficient over character bigrams (whitespace ignored).

    1.0 for identical strings, 0.0 when either has fewer than two characters.
    """
    a = re.sub(r"\s+", "", (first or "").lower())
    b = re.sub(r"\s+", "", (second or "").lower())
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0

    first_bigrams = _bigrams(a)
    second_bigrams = _bigrams(b)
    overlap = sum((first_bigrams & second_bigrams).values())
    return 2.0 * overlap / (len(a) - 1 + len(b) - 1)


def extract_key_terms(text: str, max_terms: int = 10) -> List[str]:
    """
    Top ``max_terms`` stemmed terms by weighted frequency.

    Every token longer than two characters (minus stopwords) counts once;
    capitalised words get +3 and noun-like suffixes +2 on their stem.
    Ties keep first-occurrence order.
    """
    if not text:
        return []

    raw_tokens = _tokenizer.tokenize(text)
    counts: Counter = Counter()

    for raw in raw_tokens:
        token = raw.lower()
        if len(token) <= 2 or token in STOPWORDS or token.isdigit():
            continue
        stemmed = _stemmer.stem(token)
        counts[stemmed] += 1
        if _CAPITALISED.match(raw):
            counts[stemmed] += ENTITY_WEIGHT
        if token.endswith(NOUN_SUFFIXES):
            counts[stemmed] += NOUN_WEIGHT

    return [term for term, _ in counts.most_common(max_terms)]
