"""
Keyword and pattern tables used by the category matcher.

A ``RuleSet`` is immutable: it is built once at startup and handed to the
matcher explicitly. Adding or removing a custom keyword produces a new
rule set rather than editing the active one.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional, Pattern, Tuple

from finsight.ml.schemas import TransactionCategory


@dataclass(frozen=True)
class AmountRange:
    """Expected amount band for a category; in-band amounts get a small bonus."""

    min: float
    max: float
    bonus: float

    def bonus_for(self, amount: float) -> float:
        if amount is None:
            return 0.0
        return self.bonus if self.min <= amount <= self.max else 0.0


NO_BONUS = AmountRange(0.0, 0.0, 0.0)


@dataclass(frozen=True)
class CategoryRule:
    category: TransactionCategory
    keywords: Tuple[str, ...] = ()
    patterns: Tuple[Pattern, ...] = ()
    merchant_patterns: Tuple[Pattern, ...] = ()
    context_keywords: Tuple[str, ...] = ()
    weight: float = 1.0
    amount_range: AmountRange = field(default=NO_BONUS)

    def __post_init__(self):
        if not 0.0 <= self.weight <= 1.0:
            raise ValueError(f"Rule weight must be within [0, 1], got {self.weight}")

    @classmethod
    def build(
        cls,
        category: TransactionCategory,
        keywords: Iterable[str] = (),
        patterns: Iterable[str] = (),
        merchant_patterns: Iterable[str] = (),
        context_keywords: Iterable[str] = (),
        weight: float = 1.0,
        amount_range: AmountRange = NO_BONUS,
    ) -> "CategoryRule":
        """Build a rule from plain strings, compiling regexes case-insensitively."""
        return cls(
            category=category,
            keywords=_unique(normalize_keyword(k) for k in keywords),
            patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
            merchant_patterns=tuple(re.compile(p, re.IGNORECASE) for p in merchant_patterns),
            context_keywords=_unique(normalize_keyword(k) for k in context_keywords),
            weight=weight,
            amount_range=amount_range,
        )


@dataclass(frozen=True)
class RuleSet:
    """Ordered collection of rules. Declaration order breaks score ties."""

    rules: Tuple[CategoryRule, ...]

    def __iter__(self):
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def for_category(self, category: TransactionCategory) -> Tuple[CategoryRule, ...]:
        return tuple(rule for rule in self.rules if rule.category == category)

    def keywords_for(self, category: TransactionCategory) -> Tuple[str, ...]:
        keywords = []
        for rule in self.for_category(category):
            keywords.extend(rule.keywords)
        return _unique(keywords)

    def with_keyword(self, category: TransactionCategory, keyword: str) -> "RuleSet":
        keyword = normalize_keyword(keyword)
        if not keyword:
            return self

        rules = list(self.rules)
        for index, rule in enumerate(rules):
            if rule.category == category:
                if keyword in rule.keywords:
                    return self
                rules[index] = replace(rule, keywords=rule.keywords + (keyword,))
                return RuleSet(tuple(rules))

        rules.append(CategoryRule.build(category, keywords=[keyword]))
        return RuleSet(tuple(rules))

    def without_keyword(self, category: TransactionCategory, keyword: str) -> "RuleSet":
        keyword = normalize_keyword(keyword)
        rules = tuple(
            replace(rule, keywords=tuple(k for k in rule.keywords if k != keyword))
            if rule.category == category else rule
            for rule in self.rules
        )
        return RuleSet(rules)


_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, turn punctuation into spaces and collapse whitespace."""
    if not text:
        return ""
    text = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


# Keywords are compared against normalized text, so they go through the same step.
normalize_keyword = normalize_text


def _unique(values: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def default_rule_set() -> RuleSet:
    C = TransactionCategory
    return RuleSet((
        CategoryRule.build(
            C.FOOD,
            keywords=[
                "swiggy", "zomato", "uber eats", "foodpanda", "dunzo", "food delivery",
                "mcdonald", "kfc", "domino", "pizza hut", "burger king", "subway",
                "cafe coffee day", "ccd", "starbucks", "costa coffee", "barista",
                "restaurant", "cafe", "dhaba", "mess", "canteen", "food court",
                "bakery", "sweet shop", "haldiram", "bikanervala", "food", "meal",
                "lunch", "dinner", "breakfast", "snacks", "grocery", "vegetables",
            ],
            patterns=[
                r"food|meal|restaurant|cafe|dining",
                r"swiggy|zomato|foodpanda",
                r"pizza|burger|sandwich",
            ],
            merchant_patterns=[
                r"food|restaurant|cafe",
                r"swiggy|zomato|uber\W*eats",
            ],
            context_keywords=["delivery", "order", "food", "meal", "eat"],
            amount_range=AmountRange(50, 2000, 0.1),
        ),
        CategoryRule.build(
            C.TRANSPORT,
            keywords=[
                "uber", "ola", "rapido", "meru", "mega cabs", "taxi", "cab",
                "metro", "bus", "train", "railway", "irctc", "ticket", "travel",
                "petrol", "diesel", "fuel", "bharat petroleum", "indian oil",
                "parking", "toll", "fastag", "transport", "vehicle",
            ],
            patterns=[
                r"uber|ola|taxi|cab",
                r"metro|bus|train|railway",
                r"petrol|diesel|fuel",
                r"parking|toll",
            ],
            merchant_patterns=[
                r"uber|ola|rapido",
                r"metro|bus|railway",
                r"petrol|fuel",
            ],
            context_keywords=["ride", "trip", "booking", "fuel", "travel"],
            amount_range=AmountRange(20, 1000, 0.1),
        ),
        CategoryRule.build(
            C.SHOPPING,
            keywords=[
                "amazon", "flipkart", "myntra", "ajio", "nykaa", "snapdeal",
                "big bazaar", "dmart", "reliance", "easy day", "star bazaar",
                "shopping", "mall", "store", "market", "purchase",
                "clothes", "fashion", "electronics", "laptop",
            ],
            patterns=[
                r"amazon|flipkart|myntra|ajio",
                r"shopping|mall|store",
                r"clothes|fashion|electronics",
            ],
            merchant_patterns=[
                r"amazon|flipkart|myntra|ajio|nykaa",
                r"mall|store|market",
            ],
            context_keywords=["purchase", "buy", "order", "shopping", "product"],
            amount_range=AmountRange(100, 50000, 0.05),
        ),
        CategoryRule.build(
            C.ENTERTAINMENT,
            keywords=[
                "bookmyshow", "paytm movies", "netflix", "amazon prime", "disney",
                "hotstar", "sony liv", "zee5", "voot", "alt balaji",
                "spotify", "gaana", "wynk", "jio saavn", "youtube music",
                "movie", "cinema", "theater", "entertainment", "games", "gaming",
            ],
            patterns=[
                r"netflix|prime|disney|hotstar",
                r"spotify|music|songs",
                r"movie|cinema|theater",
                r"games|gaming",
            ],
            merchant_patterns=[
                r"netflix|prime|disney|hotstar",
                r"bookmyshow|cinema|theater",
                r"spotify|gaana|wynk",
            ],
            context_keywords=["subscription", "movie", "music", "entertainment", "streaming"],
            amount_range=AmountRange(50, 3000, 0.1),
        ),
        CategoryRule.build(
            C.BILLS,
            keywords=[
                "electricity", "electric", "power", "energy", "kseb", "bescom",
                "gas", "lpg", "cylinder", "indane", "hp gas", "bharat gas",
                "water", "sewage", "municipal", "corporation",
                "internet", "broadband", "wifi", "jio fiber", "airtel", "bsnl",
                "mobile", "phone", "recharge", "prepaid", "postpaid", "bill",
                "utility", "insurance", "premium", "emi", "loan",
            ],
            patterns=[
                r"electricity|electric|power",
                r"gas|lpg|cylinder",
                r"water|sewage",
                r"internet|broadband|wifi",
                r"mobile|phone|recharge",
            ],
            merchant_patterns=[
                r"electric|power|energy",
                r"gas|lpg",
                r"water|municipal",
                r"jio|airtel|bsnl|vodafone|\bvi\b",
            ],
            context_keywords=["bill", "payment", "utility", "recharge", "service"],
            amount_range=AmountRange(100, 10000, 0.1),
        ),
        CategoryRule.build(
            C.OTHER,
            keywords=[
                "hospital", "clinic", "doctor", "medical", "medicine", "pharmacy",
                "apollo", "fortis", "manipal", "columbia asia",
                "health", "treatment", "checkup", "consultation", "surgery",
                "medplus", "pharmeasy", "netmeds", "1mg",
            ],
            patterns=[
                r"hospital|clinic|doctor|medical",
                r"pharmacy|medicine|drug",
                r"health|treatment",
            ],
            merchant_patterns=[
                r"hospital|clinic|medical",
                r"pharmacy|drug",
                r"apollo|fortis|manipal",
            ],
            context_keywords=["medical", "health", "treatment", "medicine", "doctor"],
            weight=0.9,
        ),
        CategoryRule.build(
            C.TRANSFER,
            weight=0.8,
            keywords=[
                "transfer", "send", "sent", "received", "friend", "family",
                "person", "individual", "upi", "imps", "neft", "rtgs",
            ],
            patterns=[
                r"transfer|sent|received",
                r"friend|family|person",
                r"upi|imps|neft|rtgs",
            ],
            merchant_patterns=[r"@|upi"],
            context_keywords=["transfer", "send", "receive", "friend", "family"],
        ),
    ))


DEFAULT_RULES = default_rule_set()
