"""
Smart Defaults for Expense Entry

Remembers what a user typed before so the next entry is faster:
- the last split type chosen
- the last expense entered
- a short history of descriptions for autocomplete
- category corrections the user made, keyed by the first real word

DESIGN DECISION: Everything lives in a PreferenceStoreInterface, one
JSON document per key. Corrupt or stale documents are logged and
treated as empty; suggestions are a convenience and must never block
entering an expense.
"""

import json
from decimal import Decimal
from typing import Optional

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from roomledger.config import LedgerSettings, get_settings
from roomledger.models.expense import ExpenseCategory, SplitType
from roomledger.services.storage import PreferenceStoreInterface


logger = structlog.get_logger(__name__)

STORAGE_KEYS = {
    "last_split_type": "roomledger_last_split_type",
    "expense_history": "roomledger_expense_history",
    "category_corrections": "roomledger_category_corrections",
    "last_expense": "roomledger_last_expense",
}

# Checked in order; the first keyword found in the description wins
DEFAULT_KEYWORD_MAPPINGS: dict[str, ExpenseCategory] = {
    # Groceries
    "costco": ExpenseCategory.GROCERIES,
    "walmart": ExpenseCategory.GROCERIES,
    "trader": ExpenseCategory.GROCERIES,
    "safeway": ExpenseCategory.GROCERIES,
    "kroger": ExpenseCategory.GROCERIES,
    "aldi": ExpenseCategory.GROCERIES,
    "publix": ExpenseCategory.GROCERIES,
    "whole foods": ExpenseCategory.GROCERIES,
    "grocery": ExpenseCategory.GROCERIES,
    "bigbasket": ExpenseCategory.GROCERIES,
    "dmart": ExpenseCategory.GROCERIES,
    "reliance": ExpenseCategory.GROCERIES,
    # Utilities
    "pg&e": ExpenseCategory.UTILITIES,
    "pge": ExpenseCategory.UTILITIES,
    "electric": ExpenseCategory.UTILITIES,
    "gas": ExpenseCategory.UTILITIES,
    "water": ExpenseCategory.UTILITIES,
    "internet": ExpenseCategory.UTILITIES,
    "wifi": ExpenseCategory.UTILITIES,
    "at&t": ExpenseCategory.UTILITIES,
    "verizon": ExpenseCategory.UTILITIES,
    "comcast": ExpenseCategory.UTILITIES,
    "jio": ExpenseCategory.UTILITIES,
    "airtel": ExpenseCategory.UTILITIES,
    "bsnl": ExpenseCategory.UTILITIES,
    # Rent
    "rent": ExpenseCategory.RENT,
    "lease": ExpenseCategory.RENT,
    "housing": ExpenseCategory.RENT,
    # Household
    "toilet": ExpenseCategory.HOUSEHOLD_SUPPLIES,
    "paper": ExpenseCategory.HOUSEHOLD_SUPPLIES,
    "soap": ExpenseCategory.HOUSEHOLD_SUPPLIES,
    "cleaning": ExpenseCategory.HOUSEHOLD_SUPPLIES,
    "detergent": ExpenseCategory.HOUSEHOLD_SUPPLIES,
    # Meals
    "dinner": ExpenseCategory.SHARED_MEALS,
    "lunch": ExpenseCategory.SHARED_MEALS,
    "breakfast": ExpenseCategory.SHARED_MEALS,
    "restaurant": ExpenseCategory.SHARED_MEALS,
    "takeout": ExpenseCategory.SHARED_MEALS,
    "delivery": ExpenseCategory.SHARED_MEALS,
    "zomato": ExpenseCategory.SHARED_MEALS,
    "swiggy": ExpenseCategory.SHARED_MEALS,
    "ubereats": ExpenseCategory.SHARED_MEALS,
    "doordash": ExpenseCategory.SHARED_MEALS,
    # Purchases
    "amazon": ExpenseCategory.PURCHASES,
    "flipkart": ExpenseCategory.PURCHASES,
    "ebay": ExpenseCategory.PURCHASES,
    "purchase": ExpenseCategory.PURCHASES,
    "order": ExpenseCategory.PURCHASES,
}

MIN_SUGGESTION_PREFIX = 2
MIN_KEYWORD_LENGTH = 3


class ExpenseHistoryEntry(BaseModel):
    """What is remembered about a past expense."""
    description: str
    amount: Decimal
    category: ExpenseCategory
    split_type: SplitType


class CategoryCorrection(BaseModel):
    keyword: str
    category: ExpenseCategory


_HISTORY = TypeAdapter(list[ExpenseHistoryEntry])
_CORRECTIONS = TypeAdapter(list[CategoryCorrection])


class SmartDefaults:
    """
    Learns entry defaults from a user's own history.

    Usage:
        defaults = SmartDefaults(JsonFilePreferenceStore("prefs.json"))
        category = defaults.categorize("Costco run")
        defaults.record_category_correction("Costco run", ExpenseCategory.PURCHASES)
    """

    def __init__(
        self,
        preferences: PreferenceStoreInterface,
        settings: Optional[LedgerSettings] = None,
    ):
        self._preferences = preferences
        self._settings = settings or get_settings().ledger

    # -------------------------------------------------------------------------
    # Loading helpers
    # -------------------------------------------------------------------------

    def _load_json(self, key: str, adapter: TypeAdapter, default):
        raw = self._preferences.get(STORAGE_KEYS[key])
        if not raw:
            return default
        try:
            return adapter.validate_python(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("preference_parse_failed", key=key, error=str(e))
            return default

    def _save_json(self, key: str, adapter: TypeAdapter, value) -> None:
        self._preferences.set(
            STORAGE_KEYS[key],
            adapter.dump_json(value).decode("utf-8"),
        )

    # -------------------------------------------------------------------------
    # Split type and last expense
    # -------------------------------------------------------------------------

    @property
    def last_split_type(self) -> SplitType:
        raw = self._preferences.get(STORAGE_KEYS["last_split_type"])
        try:
            return SplitType(raw) if raw else SplitType.FIFTY_FIFTY
        except ValueError:
            return SplitType.FIFTY_FIFTY

    def set_last_split_type(self, split_type: SplitType) -> None:
        self._preferences.set(STORAGE_KEYS["last_split_type"], split_type.value)

    @property
    def last_expense(self) -> Optional[ExpenseHistoryEntry]:
        return self._load_json(
            "last_expense",
            TypeAdapter(Optional[ExpenseHistoryEntry]),
            None,
        )

    @property
    def history(self) -> list[ExpenseHistoryEntry]:
        """Remembered expenses, newest first."""
        return self._load_json("expense_history", _HISTORY, [])

    @property
    def corrections(self) -> list[CategoryCorrection]:
        """Learned corrections, newest first."""
        return self._load_json("category_corrections", _CORRECTIONS, [])

    def record_expense(self, entry: ExpenseHistoryEntry) -> None:
        """
        Remember an expense for suggestions.

        History keeps one entry per description (case-insensitive), the
        newest first, capped at history_limit.
        """
        self._preferences.set(STORAGE_KEYS["last_expense"], entry.model_dump_json())

        lowered = entry.description.lower()
        history = [e for e in self.history if e.description.lower() != lowered]
        history = [entry, *history][: self._settings.history_limit]
        self._save_json("expense_history", _HISTORY, history)

    # -------------------------------------------------------------------------
    # Categorization
    # -------------------------------------------------------------------------

    def record_category_correction(
        self,
        description: str,
        category: ExpenseCategory,
    ) -> Optional[str]:
        """
        Learn that descriptions like this one belong to category.

        Returns:
            The keyword learned, or None if the description has no word
            of at least three characters
        """
        words = [w for w in description.lower().split() if len(w) >= MIN_KEYWORD_LENGTH]
        if not words:
            return None

        keyword = words[0]
        corrections = [c for c in self.corrections if c.keyword != keyword]
        corrections = [
            CategoryCorrection(keyword=keyword, category=category),
            *corrections,
        ][: self._settings.corrections_limit]
        self._save_json("category_corrections", _CORRECTIONS, corrections)
        return keyword

    def categorize(self, description: str) -> ExpenseCategory:
        """
        Guess a category for a description.

        User corrections are checked first, then the built-in keyword
        map. Falls back to OTHER.
        """
        lowered = description.lower()

        for correction in self.corrections:
            if correction.keyword in lowered:
                return correction.category

        for keyword, category in DEFAULT_KEYWORD_MAPPINGS.items():
            if keyword in lowered:
                return category

        return ExpenseCategory.OTHER

    def suggest(self, description: str) -> Optional[ExpenseHistoryEntry]:
        """Most recent remembered expense whose description starts with the input."""
        if len(description) < MIN_SUGGESTION_PREFIX:
            return None

        lowered = description.lower()
        for entry in self.history:
            if entry.description.lower().startswith(lowered):
                return entry
        return None
