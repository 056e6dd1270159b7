from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SourceType(str, Enum):
    """The closed set of content categories.

    BIBLE_VERSE and PROVERBS carry a scripture reference ("Book Chapter:Verse")
    and are deduplicated by reference range as well as by text. All others are
    free text.
    """
    BIBLE_VERSE = "bible_verse"
    PROVERBS = "proverbs"
    AFFIRMATION = "affirmation"
    LIFE_LESSON = "life_lesson"
    GRATITUDE_PROMPT = "gratitude_prompt"
    DISCUSSION_STARTER = "discussion_starter"
    INSPIRATIONAL_QUOTE = "inspirational_quote"


class Theme(str, Enum):
    LOVE = "love"
    HOPE = "hope"
    JOY = "joy"
    STRENGTH = "strength"
    PEACE = "peace"
    FRIENDSHIP = "friendship"
    KINDNESS = "kindness"
    COURAGE = "courage"
    PATIENCE = "patience"
    GRATITUDE = "gratitude"
    WISDOM = "wisdom"
    FAITH = "faith"


MIN_ITEMS_PER_CATEGORY = 2


class FulfillmentStatus(str, Enum):
    QUOTA_MET = "quota_met"
    EXHAUSTED = "exhausted"


class Candidate(BaseModel):
    """One raw item returned by the generator."""
    content: str
    source_type: SourceType
    author: Optional[str] = None
    reference: Optional[str] = None

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("content must not be empty")
        return v

    @field_validator("author", "reference")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class BaselineItem(BaseModel):
    """An item already in the store. Archived items still count for uniqueness."""
    content: str
    source_type: Optional[SourceType] = None
    author: Optional[str] = None
    reference: Optional[str] = None
    is_archived: bool = False


class AcceptedItem(BaseModel):
    """A candidate that passed the full duplicate chain. Written once, never mutated here."""
    model_config = ConfigDict(frozen=True)

    content: str
    source_type: SourceType
    author: Optional[str] = None
    reference: Optional[str] = None
    theme: Optional[Theme] = None
    translation: Optional[str] = None
    is_approved: bool = False
    is_used: bool = False
    is_archived: bool = False

    @classmethod
    def from_candidate(
        cls,
        candidate: Candidate,
        theme: Optional[Theme] = None,
        translation: Optional[str] = None,
    ) -> "AcceptedItem":
        return cls(
            content=candidate.content,
            source_type=candidate.source_type,
            author=candidate.author,
            reference=candidate.reference,
            theme=theme,
            translation=translation,
        )


class FulfillmentOutcome(BaseModel):
    source_type: SourceType
    status: FulfillmentStatus
    reason: Literal["quota_met", "saturated", "max_attempts", "deadline", "single_pass"]
    requested: int
    collected: int
    attempts: int = 0
    rejected: int = 0


class GenerationRequest(BaseModel):
    category: Union[SourceType, Literal["all"]] = SourceType.AFFIRMATION
    count: int = Field(default=20, ge=1, le=200)
    theme: Optional[Theme] = None
    translation: Optional[str] = None
    categories: Optional[List[SourceType]] = None
    caller_role: Optional[str] = None

    @field_validator("translation")
    @classmethod
    def _translation_upper(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None

    @model_validator(mode="after")
    def _enough_for_every_category(self) -> "GenerationRequest":
        # every selected category gets at least MIN_ITEMS_PER_CATEGORY
        if self.category == "all":
            needed = MIN_ITEMS_PER_CATEGORY * len(self.selected_categories())
            if self.count < needed:
                raise ValueError(
                    f"count must be at least {needed} for {len(self.selected_categories())} categories"
                )
        return self

    def selected_categories(self) -> List[SourceType]:
        if self.category != "all":
            return [SourceType(self.category)]
        if self.categories:
            # keep caller order, drop repeats
            return list(dict.fromkeys(self.categories))
        return list(SourceType)


class GenerationResult(BaseModel):
    accepted_count: int
    requested: int
    category: str
    theme: Optional[Theme] = None
    per_category_distribution: Optional[Dict[str, int]] = None
    outcomes: List[FulfillmentOutcome] = Field(default_factory=list)
    items: List[AcceptedItem] = Field(default_factory=list)
    message: Optional[str] = None


class GenerationState(BaseModel):
    """The state passed from step to step."""
    request: GenerationRequest = Field(default_factory=GenerationRequest)
    baseline: List[BaselineItem] = Field(default_factory=list)
    accepted: List[AcceptedItem] = Field(default_factory=list)
    outcomes: List[FulfillmentOutcome] = Field(default_factory=list)
    per_category_distribution: Optional[Dict[str, int]] = None
    persisted_count: int = 0
    generated_at: Optional[str] = None

    execution_log: List[Dict[str, Any]] = Field(default_factory=list)

    def to_result(self) -> GenerationResult:
        request = self.request
        category = request.category if request.category == "all" else SourceType(request.category).value
        message = None
        if not self.accepted:
            message = "No new unique items were accepted (all candidates were duplicates or generation failed)"
        return GenerationResult(
            accepted_count=len(self.accepted),
            requested=request.count,
            category=category,
            theme=request.theme,
            per_category_distribution=self.per_category_distribution,
            outcomes=list(self.outcomes),
            items=list(self.accepted),
            message=message,
        )

    def to_json(self):
        return self.model_dump()
