from dataclasses import dataclass
from typing import Dict

from .models import SourceType


@dataclass(frozen=True)
class CategoryStrategy:
    """How one SourceType is prompted and deduplicated.

    has_citation:    items carry a "Book Chapter:Verse" reference; enables the
                     reference key + range overlap stage.
    semantic_check:  phrasing varies enough that duplicates may share no
                     vocabulary; enables the LLM duplicate judge.
    exclusion:       what to feed back into the prompt as "already have":
                     "references", "authors" or "samples".
    requires_author: drop candidates without an author.
    """
    source_type: SourceType
    has_citation: bool = False
    semantic_check: bool = False
    exclusion: str = "samples"
    requires_author: bool = False
    uses_translation: bool = False


CATEGORY_STRATEGIES: Dict[SourceType, CategoryStrategy] = {
    SourceType.BIBLE_VERSE: CategoryStrategy(
        SourceType.BIBLE_VERSE, has_citation=True, exclusion="references", uses_translation=True
    ),
    SourceType.PROVERBS: CategoryStrategy(
        SourceType.PROVERBS, has_citation=True, exclusion="references", uses_translation=True
    ),
    SourceType.AFFIRMATION: CategoryStrategy(SourceType.AFFIRMATION, semantic_check=True),
    SourceType.LIFE_LESSON: CategoryStrategy(SourceType.LIFE_LESSON, semantic_check=True),
    SourceType.GRATITUDE_PROMPT: CategoryStrategy(SourceType.GRATITUDE_PROMPT, semantic_check=True),
    SourceType.DISCUSSION_STARTER: CategoryStrategy(SourceType.DISCUSSION_STARTER, semantic_check=True),
    SourceType.INSPIRATIONAL_QUOTE: CategoryStrategy(
        SourceType.INSPIRATIONAL_QUOTE, exclusion="authors", requires_author=True
    ),
}


def strategy_for(source_type: SourceType) -> CategoryStrategy:
    return CATEGORY_STRATEGIES[SourceType(source_type)]
