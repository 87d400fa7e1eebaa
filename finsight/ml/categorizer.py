"""
Transaction categorizer for FinSight.

Scores free text against every category rule with a weighted blend of
keyword, regex, merchant-regex and context-keyword hits, plus a small
amount-range bonus used to break ties. The matcher itself is pure; the
``TransactionCategorizer`` pipeline couples it with the merchant learning
store.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from finsight.ml.category_rules import DEFAULT_RULES, CategoryRule, RuleSet, normalize_text
from finsight.ml.merchant_memory import MerchantLearningStore
from finsight.ml.schemas import Transaction, TransactionCategory

logger = logging.getLogger(__name__)

KEYWORD_WEIGHT = 0.4
PATTERN_WEIGHT = 0.3
MERCHANT_PATTERN_WEIGHT = 0.2
CONTEXT_WEIGHT = 0.1

FALLBACK_CATEGORY = TransactionCategory.OTHER

_PATTERN_ERRORS = (re.error, TypeError, ValueError, RecursionError)


class CategoryMatcher:
    """
    Keyword/pattern category matcher.

    ``classify`` is total: any text, merchant or amount (including empty or
    ``None`` values) yields a member of ``TransactionCategory``.
    """

    def __init__(self, rules: Optional[RuleSet] = None):
        self.rules = rules if rules is not None else DEFAULT_RULES

    def classify(
        self,
        text: Optional[str],
        merchant: Optional[str] = None,
        amount: Optional[float] = None,
    ) -> TransactionCategory:
        category, _ = self.best_match(text, merchant, amount)
        return category

    def best_match(
        self,
        text: Optional[str],
        merchant: Optional[str] = None,
        amount: Optional[float] = None,
    ) -> Tuple[TransactionCategory, float]:
        """
        Return the winning category and its score.

        The first rule (in declaration order) with the strictly highest
        score wins; when nothing scores above zero the fallback is ``Other``.
        """
        best_category = FALLBACK_CATEGORY
        best_score = 0.0

        for rule, score in self._score_rules(text, merchant, amount):
            if score > best_score:
                best_score = score
                best_category = rule.category

        return best_category, best_score

    def scores(
        self,
        text: Optional[str],
        merchant: Optional[str] = None,
        amount: Optional[float] = None,
    ) -> Dict[TransactionCategory, float]:
        """Per-category score; categories with several rules keep their best rule."""
        result: Dict[TransactionCategory, float] = {}
        for rule, score in self._score_rules(text, merchant, amount):
            result[rule.category] = max(score, result.get(rule.category, 0.0))
        return result

    def top_keywords(self, text: Optional[str], limit: int = 5) -> List[Dict[str, Any]]:
        """
        Rank individual keywords found in ``text``; longer matches rank higher.
        """
        normalized = normalize_text(text)
        if not normalized or limit <= 0:
            return []

        matches = []
        for rule in self.rules:
            for keyword in rule.keywords:
                if keyword in normalized:
                    matches.append({
                        "keyword": keyword,
                        "category": rule.category,
                        "score": float(len(keyword)),
                    })

        matches.sort(key=lambda m: m["score"], reverse=True)
        return matches[:limit]

    def _score_rules(
        self,
        text: Optional[str],
        merchant: Optional[str],
        amount: Optional[float],
    ) -> Iterable[Tuple[CategoryRule, float]]:
        combined = normalize_text(f"{text or ''} {merchant or ''}")
        merchant_text = (merchant or "").lower().strip()

        for rule in self.rules:
            yield rule, self._score_rule(rule, combined, merchant_text, amount)

    def _score_rule(
        self,
        rule: CategoryRule,
        text: str,
        merchant_text: str,
        amount: Optional[float],
    ) -> float:
        if not text:
            return 0.0

        score = KEYWORD_WEIGHT * _ratio(
            sum(1 for keyword in rule.keywords if keyword in text), len(rule.keywords)
        )
        score += PATTERN_WEIGHT * _ratio(
            _count_matches(rule.patterns, text), len(rule.patterns)
        )
        score += MERCHANT_PATTERN_WEIGHT * _ratio(
            _count_matches(rule.merchant_patterns, merchant_text), len(rule.merchant_patterns)
        )
        score += CONTEXT_WEIGHT * _ratio(
            sum(1 for keyword in rule.context_keywords if keyword in text),
            len(rule.context_keywords),
        )

        # The amount band only separates rules that already matched something.
        if score > 0:
            score += rule.amount_range.bonus_for(amount)

        return score * rule.weight


class TransactionCategorizer:
    """
    Categorization pipeline: learned merchant memory first, matcher second.

    Every matcher decision for a transaction with a merchant is fed back into
    the learning store. The store is never persisted from here; flushing is
    the caller's decision.
    """

    def __init__(
        self,
        matcher: Optional[CategoryMatcher] = None,
        store: Optional[MerchantLearningStore] = None,
    ):
        self.matcher = matcher or CategoryMatcher()
        self.store = store if store is not None else MerchantLearningStore()

    def categorize(self, transaction: Transaction) -> Transaction:
        text = transaction.description or transaction.raw_text or ""
        merchant = transaction.merchant

        if merchant:
            learned = self.store.lookup(merchant)
            if learned is not None:
                logger.debug(f"Merchant memory hit: {merchant!r} -> {learned.value}")
                return transaction.with_category(learned)

        category, score = self.matcher.best_match(text, merchant, transaction.amount)

        if merchant:
            self.store.reinforce(merchant, category, score)

        return transaction.with_category(category)

    def categorize_many(self, transactions: Sequence[Transaction]) -> List[Transaction]:
        categorized = [self.categorize(t) for t in transactions]
        logger.info(f"Categorized {len(categorized)} transactions")
        return categorized


def _ratio(matched: int, total: int) -> float:
    return matched / total if total else 0.0


def _count_matches(patterns: Sequence[Pattern], text: str) -> int:
    if not text:
        return 0

    matched = 0
    for pattern in patterns:
        try:
            if pattern.search(text):
                matched += 1
        except _PATTERN_ERRORS as e:
            logger.debug(f"Pattern {pattern.pattern!r} failed on input, treating as no match: {e}")
    return matched
