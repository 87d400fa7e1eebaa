"""
Shared engine instances for the API layer.

The learning store is process-wide; the categorizer holds an immutable rule
set which is swapped as a whole when custom keywords are added.
"""

import threading
from functools import lru_cache

from finsight.ml.categorizer import CategoryMatcher, TransactionCategorizer
from finsight.ml.category_rules import DEFAULT_RULES, RuleSet
from finsight.ml.merchant_memory import MerchantLearningStore
from finsight.ml.schemas import TransactionCategory


class CategorizerService:
    """Owns the active rule set and hands out categorizers bound to it."""

    def __init__(self, store: MerchantLearningStore, rules: RuleSet = DEFAULT_RULES):
        self.store = store
        self._rules = rules
        self._lock = threading.Lock()

    @property
    def rules(self) -> RuleSet:
        return self._rules

    @property
    def matcher(self) -> CategoryMatcher:
        return CategoryMatcher(self._rules)

    @property
    def categorizer(self) -> TransactionCategorizer:
        return TransactionCategorizer(self.matcher, self.store)

    def add_keyword(self, category: TransactionCategory, keyword: str) -> RuleSet:
        with self._lock:
            self._rules = self._rules.with_keyword(category, keyword)
            return self._rules

    def remove_keyword(self, category: TransactionCategory, keyword: str) -> RuleSet:
        with self._lock:
            self._rules = self._rules.without_keyword(category, keyword)
            return self._rules

    def reset_rules(self) -> None:
        with self._lock:
            self._rules = DEFAULT_RULES


@lru_cache()
def get_learning_store() -> MerchantLearningStore:
    return MerchantLearningStore()


@lru_cache()
def get_categorizer_service() -> CategorizerService:
    return CategorizerService(get_learning_store())
