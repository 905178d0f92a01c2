"""Label-based categorization of pull requests.

A pull request's category is a pure function of its label set, evaluated
once when the PR is first stored. Labels are lower-cased and matched by
substring against an ordered rule table; the first matching rule wins, so
a PR labelled both "feature" and "breaking-change" lands in Features.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from src.releasenotes.store.base import ReleaseStore
from src.releasenotes.store.models import Category


logger = logging.getLogger(__name__)


FEATURES = "Features"
BUG_FIXES = "Bug Fixes"
IMPROVEMENTS = "Improvements"
DOCUMENTATION = "Documentation"
DEPENDENCIES = "Dependencies"
BREAKING_CHANGES = "Breaking Changes"

# Render-time bucket for PRs without a category; never stored.
OTHER_CHANGES = "Other Changes"


# Priority-ordered (category, label substrings) pairs.
CATEGORY_RULES: List[Tuple[str, Tuple[str, ...]]] = [
    (FEATURES, ("feat", "feature")),
    (BUG_FIXES, ("fix", "bug")),
    (IMPROVEMENTS, ("improve", "enhancement")),
    (DOCUMENTATION, ("doc",)),
    (DEPENDENCIES, ("dep",)),
    (BREAKING_CHANGES, ("break",)),
]


DEFAULT_CATEGORIES: List[Category] = [
    Category(name=FEATURES, description="New features and capabilities", display_order=1),
    Category(name=BUG_FIXES, description="Bug fixes and corrections", display_order=2),
    Category(name=IMPROVEMENTS, description="Enhancements to existing functionality", display_order=3),
    Category(name=DOCUMENTATION, description="Documentation updates", display_order=4),
    Category(name=DEPENDENCIES, description="Dependency updates", display_order=5),
    Category(name=BREAKING_CHANGES, description="Changes that break backward compatibility", display_order=6),
]

TAXONOMY_ORDER: List[str] = [c.name for c in DEFAULT_CATEGORIES]


def categorize(labels: Sequence[str]) -> Optional[str]:
    """Map a label set to a category name.

    Args:
        labels: Label names as they appear on the pull request.

    Returns:
        The name of the first matching category, or None when no rule
        matches.
    """
    lowered = [label.lower() for label in labels]
    for category, needles in CATEGORY_RULES:
        for label in lowered:
            if any(needle in label for needle in needles):
                return category
    return None


def resolve_category_id(
    labels: Sequence[str],
    categories: Sequence[Category],
) -> Optional[int]:
    """Map a label set to the id of a stored category.

    Returns None when no rule matches or the matched category is not
    stored.
    """
    name = categorize(labels)
    if name is None:
        return None
    for category in categories:
        if category.name == name:
            return category.id
    return None


async def ensure_default_categories(store: ReleaseStore) -> List[Category]:
    """Seed the default taxonomy when the category table is empty.

    Returns:
        The stored categories ordered by display_order.
    """
    categories = await store.list_categories()
    if categories:
        return categories

    logger.info(
        "Seeding default categories",
        extra={"count": len(DEFAULT_CATEGORIES)},
    )
    await store.insert_categories(DEFAULT_CATEGORIES)
    return await store.list_categories()
