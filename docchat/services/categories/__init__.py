"""Domain categories: detection, query expansion and prompt focus.

The table lives in ``categories.json`` next to this module. Adding a category is
a data change: give it filename/content terms, fallback search keywords,
query-expansion hints and prompt focus bullets, and list it in ``order``.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

GENERAL = "general"
CATEGORIES_FILE = Path(__file__).with_name("categories.json")


class Category(BaseModel):
    label: str
    filename_terms: List[str] = Field(default_factory=list)
    content_terms: List[str] = Field(default_factory=list)
    search_keywords: List[str] = Field(default_factory=list)
    expansions: Dict[str, str] = Field(default_factory=dict)
    prompt_focus: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class CategoryTable(BaseModel):
    order: List[str]
    categories: Dict[str, Category]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_table(self) -> "CategoryTable":
        if GENERAL not in self.categories:
            raise ValueError(f"category table has no '{GENERAL}' entry")
        unknown = [name for name in self.order if name not in self.categories]
        if unknown:
            raise ValueError(f"unknown categories in order: {unknown}")
        return self

    def get(self, name: Optional[str]) -> Category:
        """Return the named category, or ``general`` for unknown names."""
        return self.categories.get(name or GENERAL) or self.categories[GENERAL]


@lru_cache(maxsize=1)
def load_categories() -> CategoryTable:
    """Load the category table once per process."""
    with open(CATEGORIES_FILE, "r", encoding="utf-8") as f:
        table = CategoryTable.model_validate(json.load(f))
    logger.debug(f"Loaded {len(table.categories)} categories from {CATEGORIES_FILE}")
    return table


def detect_category(filename: str = "", content: str = "") -> str:
    """Return the first category (in table order) whose terms appear in the
    filename or the content; ``general`` when none match.

    Matching is case-insensitive substring containment.
    """
    table = load_categories()
    lower_filename = (filename or "").lower()
    lower_content = (content or "").lower()

    for name in table.order:
        category = table.categories[name]
        if any(term in lower_filename for term in category.filename_terms):
            return name
        if lower_content and any(term in lower_content for term in category.content_terms):
            return name
    return GENERAL


def expand_query(query: str, category: Optional[str]) -> str:
    """Append the hint of the first expansion trigger found in the query.

    The user's words are kept as-is; at most one hint is appended.
    """
    expansions = load_categories().get(category).expansions
    lower = query.lower()
    for trigger, hint in expansions.items():
        if trigger in lower:
            return f"{query} {hint}"
    return query


def category_keywords(category: Optional[str]) -> List[str]:
    """Fallback search keywords for a category."""
    return list(load_categories().get(category).search_keywords)


def prompt_focus(category: Optional[str]) -> List[str]:
    return list(load_categories().get(category).prompt_focus)


def category_label(category: Optional[str]) -> str:
    return load_categories().get(category).label
