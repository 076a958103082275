"""Keyword and category based relevance scoring.

Scores are deterministic and computed from the lowercased world description
against the lowercased entry name and description. The category table below
is the single source of the trigger/match word lists and bonuses.
"""

from typing import List, NamedTuple, Tuple

from ..catalog.models import CatalogEntry

NAME_TOKEN_BONUS = 0.2
DESCRIPTION_TOKEN_BONUS = 0.1
MIN_TOKEN_LENGTH = 3

FUNCTIONAL_BONUS = 0.3
THEME_BONUS = 0.2

DEFAULT_REASONING = "Matches your world description keywords."


class CategoryRule(NamedTuple):
    """A category bonus applied when the description and entry both match."""

    name: str
    triggers: Tuple[str, ...]
    name_matches: Tuple[str, ...]
    description_matches: Tuple[str, ...]
    bonus: float
    reason: str


CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule(
        name="building",
        triggers=("build", "construct", "creat"),
        name_matches=("build",),
        description_matches=("build", "construction"),
        bonus=FUNCTIONAL_BONUS,
        reason="Enhances building capabilities.",
    ),
    CategoryRule(
        name="adventure",
        triggers=("adventure", "quest", "explore"),
        name_matches=("adventure", "quest"),
        description_matches=("adventure", "quest", "dungeon"),
        bonus=FUNCTIONAL_BONUS,
        reason="Adds adventure and quest content.",
    ),
    CategoryRule(
        name="technology",
        triggers=("tech", "machine", "automat"),
        name_matches=("tech", "machine"),
        description_matches=("tech", "machine", "automation"),
        bonus=FUNCTIONAL_BONUS,
        reason="Introduces technological elements.",
    ),
    CategoryRule(
        name="magic",
        triggers=("magic", "spell", "wizard"),
        name_matches=("magic", "spell", "mystic"),
        description_matches=("magic", "spell", "enchant"),
        bonus=FUNCTIONAL_BONUS,
        reason="Brings magical gameplay.",
    ),
    CategoryRule(
        name="medieval",
        triggers=("medieval", "castle", "knight"),
        name_matches=("medieval",),
        description_matches=("medieval", "castle"),
        bonus=THEME_BONUS,
        reason="Fits a medieval setting.",
    ),
    CategoryRule(
        name="fantasy",
        triggers=("fantasy", "dragon", "mythical"),
        name_matches=("fantasy",),
        description_matches=("fantasy", "dragon"),
        bonus=THEME_BONUS,
        reason="Fits a fantasy setting.",
    ),
    CategoryRule(
        name="sci-fi",
        triggers=("sci-fi", "futuristic", "space"),
        name_matches=("tech",),
        description_matches=("futuristic", "space"),
        bonus=THEME_BONUS,
        reason="Fits a sci-fi setting.",
    ),
)


def _contains_any(text: str, words: Tuple[str, ...]) -> bool:
    return any(word in text for word in words)


class RelevanceScorer:
    """Scores catalog entries against a free-text world description."""

    def __init__(self, rules: Tuple[CategoryRule, ...] = CATEGORY_RULES):
        self.rules = rules

    def score(self, entry: CatalogEntry, description: str) -> float:
        """Score one entry against a description.

        Args:
            entry: Catalog entry to score
            description: Free-text world description

        Returns:
            Relevance clamped to [0.0, 1.0]
        """
        query = description.lower()
        mod_name = entry.name.lower()
        mod_description = entry.description.lower()

        score = 0.0
        for token in query.split():
            if len(token) < MIN_TOKEN_LENGTH:
                continue
            if token in mod_name:
                score += NAME_TOKEN_BONUS
            if token in mod_description:
                score += DESCRIPTION_TOKEN_BONUS

        for rule in self._matching_rules(query, mod_name, mod_description):
            score += rule.bonus

        return max(0.0, min(score, 1.0))

    def matched_rules(self, entry: CatalogEntry, description: str) -> List[CategoryRule]:
        """Return the category rules that fire for an entry."""
        return self._matching_rules(
            description.lower(), entry.name.lower(), entry.description.lower()
        )

    def generate_reasoning(self, entry: CatalogEntry, description: str) -> str:
        """Build a short explanation from the matched category rules."""
        reasons = [rule.reason for rule in self.matched_rules(entry, description)]
        if not reasons:
            return DEFAULT_REASONING
        return " ".join(reasons)

    def _matching_rules(
        self, query: str, mod_name: str, mod_description: str
    ) -> List[CategoryRule]:
        return [
            rule
            for rule in self.rules
            if _contains_any(query, rule.triggers)
            and (
                _contains_any(mod_name, rule.name_matches)
                or _contains_any(mod_description, rule.description_matches)
            )
        ]
