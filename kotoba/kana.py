"""
Kana normalization.

Two keys are derived from any dictionary or query text:

- to_hiragana: katakana, half-width katakana and romaji folded to hiragana.
  Used by exact matching.
- to_hiragana_key: the hiragana form with typo-prone distinctions removed
  (long vowel marks, small tsu, small kana, voicing marks, doubled vowels).
  Used by approximate and fuzzy matching.
"""

import re
import unicodedata

import jaconv

_ROMAJI_RE = re.compile(r"[A-Za-z]+(?:['-][A-Za-z]+)*")

_SMALL_TO_LARGE = str.maketrans("ぁぃぅぇぉゃゅょゎゕゖ", "あいうえおやゆよわかけ")

_DROPPED = str.maketrans("", "", "ーっ")

_VOICING_MARKS = "゙゚"

# Vowel of each (unvoiced, large) hiragana syllable
_VOWEL_ROWS = {
    "a": "あかさたなはまやらわ",
    "i": "いきしちにひみり",
    "u": "うくすつぬふむゆる",
    "e": "えけせてねへめれ",
    "o": "おこそとのほもよろを",
}
_VOWEL_OF = {ch: vowel for vowel, chars in _VOWEL_ROWS.items() for ch in chars}
_PURE_VOWELS = {"あ": "a", "い": "i", "う": "u", "え": "e", "お": "o"}


def is_hiragana(ch: str) -> bool:
    return "ぁ" <= ch <= "ゟ"


def is_katakana(ch: str) -> bool:
    return "゠" <= ch <= "ヿ" or "ｦ" <= ch <= "ﾟ"


def is_kana(text: str) -> bool:
    """True if text is non-empty and consists only of kana."""
    return bool(text) and all(is_hiragana(ch) or is_katakana(ch) for ch in text)


def has_kanji(text: str) -> bool:
    return any("一" <= ch <= "鿿" or "㐀" <= ch <= "䶿" for ch in text)


def reverse(text: str) -> str:
    return text[::-1]


def _romaji_to_kana(match: re.Match) -> str:
    return jaconv.alphabet2kana(match.group().lower())


def to_hiragana(text: str) -> str:
    """
    Normalize text to hiragana.

    Half-width katakana is widened, full-width ASCII narrowed, katakana
    folded to hiragana and romaji runs transliterated. Kanji and other
    characters pass through unchanged.

    Example:
        >>> to_hiragana("イヌ")
        'いぬ'
        >>> to_hiragana("inu")
        'いぬ'
    """
    text = unicodedata.normalize("NFC", text)
    text = jaconv.h2z(text, kana=True, ascii=False, digit=False)
    text = jaconv.z2h(text, kana=False, ascii=True, digit=True)
    text = jaconv.kata2hira(text)
    return _ROMAJI_RE.sub(_romaji_to_kana, text)


def _strip_voicing(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if ch not in _VOICING_MARKS)
    return unicodedata.normalize("NFC", stripped)


def _collapse_vowels(text: str) -> str:
    out = []
    previous = None
    for ch in text:
        vowel = _PURE_VOWELS.get(ch)
        if previous is not None and vowel is not None and (
            vowel == previous
            or (previous == "o" and vowel == "u")
            or (previous == "e" and vowel == "i")
        ):
            continue
        out.append(ch)
        previous = _VOWEL_OF.get(ch)
    return "".join(out)


def to_hiragana_key(text: str) -> str:
    """
    Normalize text to an approximate matching key.

    Example:
        >>> to_hiragana_key("とうきょう")
        'ときよ'
        >>> to_hiragana_key("ラーメン") == to_hiragana_key("らめん")
        True
    """
    text = to_hiragana(text).translate(_DROPPED)
    text = _strip_voicing(text).translate(_SMALL_TO_LARGE)
    return _collapse_vowels(text).upper()
