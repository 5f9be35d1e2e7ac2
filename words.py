# words.py
# Amount-in-words line for tax invoices (Indian grouping: thousand, lakh, crore)

from decimal import Decimal, ROUND_HALF_UP

from num2words import num2words


def round_rupees(amount):
    """Nearest whole rupee, half away from zero (12.50 -> 13). Never truncates."""
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def number_in_words(n):
    """
    Integer -> title-cased English words in Indian grouping.

    num2words gives "ten thousand, two hundred and thirty-eight"; commas and
    the conjunction are dropped and hyphens split so the legal line reads
    "Ten Thousand Two Hundred Thirty Eight".
    """
    if isinstance(n, bool) or not isinstance(n, int):
        raise TypeError(f"amount must be an int, got {type(n).__name__}")
    if n < 0:
        raise ValueError(f"amount must be >= 0, got {n}")
    raw = num2words(n, lang="en_IN").replace(",", " ").replace("-", " ")
    return " ".join(w.title() for w in raw.split() if w != "and")


def rupees_in_words(amount):
    """0 -> "Zero Rupees Only"; 238 -> "Two Hundred Thirty Eight Rupees Only"."""
    return f"{number_in_words(amount)} Rupees Only"
