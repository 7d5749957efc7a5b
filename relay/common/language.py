"""
Language Detection Service

Best-effort language-family tagging for ingested chunks.
Each heuristic is a LanguageDetector; detect_language asks them in order and
the first one that answers wins. Untagged text defaults to "english".
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

# Seed langdetect for deterministic results
DetectorFactory.seed = 0

DEFAULT_FAMILY = "english"
SAMPLE_LENGTH = 500

_WORD_RE = re.compile(r"[^\W\d_]+", re.UNICODE)


@dataclass(frozen=True)
class LanguageInfo:
    """Detected language information"""
    family: str         # "english", "romance", "germanic", "slavic", "chinese", ...
    script: str         # "Latin", "Han", "Kana", "Hangul", "Arabic", "Greek", "Cyrillic"
    confidence: float   # 0.0~1.0

    @property
    def is_english(self) -> bool:
        return self.family == DEFAULT_FAMILY


# Unicode range based script detection
_SCRIPT_RANGES = [
    (0xAC00, 0xD7AF, "Hangul", "korean"),     # Hangul Syllables
    (0x1100, 0x11FF, "Hangul", "korean"),     # Hangul Jamo
    (0x3130, 0x318F, "Hangul", "korean"),     # Hangul Compatibility Jamo
    (0x3040, 0x309F, "Kana", "japanese"),     # Hiragana
    (0x30A0, 0x30FF, "Kana", "japanese"),     # Katakana
    (0x4E00, 0x9FFF, "Han", "chinese"),       # CJK Unified Ideographs
    (0x3400, 0x4DBF, "Han", "chinese"),       # CJK Extension A
    (0x0600, 0x06FF, "Arabic", "arabic"),     # Arabic
    (0x0750, 0x077F, "Arabic", "arabic"),     # Arabic Supplement
    (0x0370, 0x03FF, "Greek", "greek"),       # Greek and Coptic
    (0x0400, 0x04FF, "Cyrillic", "slavic"),   # Cyrillic
]


def _script_counts(text: str) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for ch in text:
        if not ch.isalpha():
            continue
        cp = ord(ch)
        script = "Latin"
        for start, end, name, _ in _SCRIPT_RANGES:
            if start <= cp <= end:
                script = name
                break
        counts[script] = counts.get(script, 0) + 1
    return counts


def dominant_script(text: str) -> str:
    """Most frequent script among the letters of text ("Latin" when none)."""
    counts = _script_counts(text)
    if not counts:
        return "Latin"
    return max(counts, key=counts.get)


class LanguageDetector(ABC):
    """One language-family heuristic."""

    confidence: float = 0.5

    @abstractmethod
    def detect(self, text: str) -> Optional[str]:
        """Return a family tag, or None when this heuristic has no opinion."""


class ScriptDetector(LanguageDetector):
    """
    Non-Latin scripts identify their family directly.

    Japanese text mixes Han and Kana, so any Kana wins over Han.
    """

    confidence = 0.9

    def __init__(self, min_share: float = 0.15):
        self._min_share = min_share

    def detect(self, text: str) -> Optional[str]:
        counts = _script_counts(text)
        total = sum(counts.values())
        if total == 0:
            return None

        families: Dict[str, int] = {}
        for start, end, script, family in _SCRIPT_RANGES:
            if script in counts:
                families[family] = counts[script]

        if not families:
            return None
        if "japanese" in families:
            families["japanese"] += families.pop("chinese", 0)

        family = max(families, key=families.get)
        if families[family] <= total * self._min_share:
            return None
        return family


class DiacriticDetector(LanguageDetector):
    """Latin letters with family-specific marks."""

    confidence = 0.7

    MARKS = {
        "romance": set("àáâãçèéêëìíîïñòóôõùúûýœ"),
        "germanic": set("äöüßåøæ"),
        "slavic": set("čćďěłńňřśšťůźżžąę"),
    }

    def __init__(self, min_marks: int = 2):
        self._min_marks = min_marks

    def detect(self, text: str) -> Optional[str]:
        sample = text.lower()
        scores = {
            family: sum(1 for ch in sample if ch in marks)
            for family, marks in self.MARKS.items()
        }
        family = max(scores, key=scores.get)
        if scores[family] < self._min_marks:
            return None
        return family


class KeywordDetector(LanguageDetector):
    """Counts common function words per family."""

    confidence = 0.6

    KEYWORDS = {
        "english": {
            "the", "and", "is", "are", "of", "to", "you", "with", "for",
            "this", "that", "what", "have", "not", "can",
        },
        "romance": {
            "el", "los", "las", "que", "por", "para", "una", "del", "est",
            "les", "des", "une", "avec", "pour", "il", "che", "non", "della",
            "não", "com", "uma", "sont",
        },
        "germanic": {
            "der", "die", "das", "und", "ist", "nicht", "ein", "eine", "ich",
            "mit", "het", "een", "van", "niet", "och", "att", "jeg", "ikke",
        },
        "slavic": {
            "się", "nie", "jest", "że", "jak", "ale", "też", "jsem", "není",
            "ako", "sam", "kako", "biti",
        },
    }

    def __init__(self, min_hits: int = 2):
        self._min_hits = min_hits

    def detect(self, text: str) -> Optional[str]:
        words = _WORD_RE.findall(text.lower())
        if not words:
            return None

        scores = {
            family: sum(1 for w in words if w in keywords)
            for family, keywords in self.KEYWORDS.items()
        }
        family = max(scores, key=scores.get)
        if scores[family] < self._min_hits:
            return None
        return family


class LangdetectDetector(LanguageDetector):
    """Statistical detection via langdetect, mapped from ISO codes to families."""

    confidence = 0.8

    ISO_FAMILIES = {
        "en": "english",
        "es": "romance", "fr": "romance", "it": "romance", "pt": "romance",
        "ro": "romance", "ca": "romance",
        "de": "germanic", "nl": "germanic", "sv": "germanic", "da": "germanic",
        "no": "germanic", "af": "germanic",
        "ru": "slavic", "uk": "slavic", "bg": "slavic", "pl": "slavic",
        "cs": "slavic", "sk": "slavic", "sl": "slavic", "hr": "slavic",
        "sr": "slavic", "mk": "slavic",
        "zh-cn": "chinese", "zh-tw": "chinese",
        "ja": "japanese",
        "ko": "korean",
        "ar": "arabic", "fa": "arabic", "ur": "arabic",
        "el": "greek",
    }

    def __init__(self, min_probability: float = 0.8, min_length: int = 20):
        self._min_probability = min_probability
        self._min_length = min_length

    def detect(self, text: str) -> Optional[str]:
        cleaned = text.strip()
        if len(cleaned) < self._min_length:
            return None

        try:
            results = detect_langs(cleaned)
        except LangDetectException:
            return None

        if not results:
            return None
        top = results[0]
        if top.prob < self._min_probability:
            return None
        return self.ISO_FAMILIES.get(top.lang)


def default_detectors() -> List[LanguageDetector]:
    return [ScriptDetector(), DiacriticDetector(), KeywordDetector(), LangdetectDetector()]


def detect_language(
    text: str,
    detectors: Optional[Sequence[LanguageDetector]] = None,
) -> LanguageInfo:
    """Detect the language family of text.

    Only the first 500 characters are inspected.

    Args:
        text: Input text
        detectors: Heuristics to ask in order (defaults to default_detectors())

    Returns:
        LanguageInfo with family, script and the answering detector's confidence
    """
    sample = (text or "")[:SAMPLE_LENGTH]
    script = dominant_script(sample)

    if not sample.strip():
        return LanguageInfo(family=DEFAULT_FAMILY, script=script, confidence=0.0)

    if detectors is None:
        detectors = default_detectors()

    for detector in detectors:
        family = detector.detect(sample)
        if family:
            return LanguageInfo(family=family, script=script, confidence=detector.confidence)

    return LanguageInfo(family=DEFAULT_FAMILY, script=script, confidence=0.3)
