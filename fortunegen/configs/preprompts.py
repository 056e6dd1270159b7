from fortunegen.core.models import SourceType

# ────────────────────────────────────────────────────────────────────
# Shared system prompt for candidate generation
# ────────────────────────────────────────────────────────────────────
PROMPT_SYSTEM_GENERATE = (
    "You are a helpful assistant that generates uplifting content. "
    "Always respond with valid JSON arrays only, no markdown."
)

# Placeholders available in every generation template:
#   {count}            number of items to generate
#   {theme_block}      "" or a line restricting the theme
#   {translation}      Bible translation (citation categories)
#   {exclusion_block}  "" or the list of things we already have

PROMPT_TMPL_BIBLE_VERSE = """
Generate {count} REAL, ACTUAL Bible verses from the {translation} translation. These must be genuine scripture that can be verified.

For each verse, provide:
1. The EXACT verse text as it appears in the {translation}
2. The precise Bible reference (Book Chapter:Verse format)

Focus on LESSER-KNOWN but still encouraging verses. Dig deeper into Scripture than the most commonly quoted verses.
{theme_block}{exclusion_block}
CRITICAL REQUIREMENTS:
- These must be REAL Bible verses, not made-up spiritual sayings
- Include the EXACT reference (e.g., "Isaiah 41:10", "Zephaniah 3:17", "Lamentations 3:22-23")

Format as JSON array:
[{{"content": "exact verse text", "reference": "Book Chapter:Verse"}}]
"""

PROMPT_TMPL_PROVERBS = """
Generate {count} REAL biblical proverbs and wisdom sayings ({translation} wording), especially from Proverbs 10-31, Ecclesiastes and the teachings of Jesus in the Gospels.
{theme_block}{exclusion_block}
CRITICAL REQUIREMENTS:
- These must be REAL Bible verses
- Include the Bible reference in Book Chapter:Verse format
- Choose accessible, practical wisdom in simple language

Format as JSON array:
[{{"content": "the proverb text", "reference": "Book Chapter:Verse"}}]
"""

PROMPT_TMPL_AFFIRMATION = """
Generate {count} unique, positive affirmations for adults with intellectual and developmental disabilities.

Make them:
- Simple sentences (8-15 words max)
- First-person statements ("I am...", "I can...", "I have...")
- Focused on self-worth, abilities, belonging, and positive qualities
- FRESH and CREATIVE, not generic or overused
{theme_block}{exclusion_block}
Format as JSON array:
[{{"content": "the affirmation text"}}]
"""

PROMPT_TMPL_LIFE_LESSON = """
Generate {count} short, wise sayings about life, like fortune cookie wisdom: timeless, universal truths in simple words.

Style guidelines:
- SHORT and memorable (5-12 words ideal)
- Wise but simple, no complex vocabulary
- ORIGINAL, avoid cliches
{theme_block}{exclusion_block}
Format as JSON array:
[{{"content": "the life lesson text"}}]
"""

PROMPT_TMPL_GRATITUDE_PROMPT = """
Generate {count} gratitude prompts to help adults with intellectual and developmental disabilities reflect on the good things in life.

Make them:
- Simple questions or statements that prompt reflection
- Related to everyday experiences (friends, activities, small pleasures)
- VARIED, each about a different specific thing
{theme_block}{exclusion_block}
Format as JSON array:
[{{"content": "the gratitude prompt text"}}]
"""

PROMPT_TMPL_DISCUSSION_STARTER = """
Generate {count} thought-provoking discussion questions for adults with intellectual and developmental disabilities.

Questions should invite sharing experiences and opinions about favorite things, dreams, friendship, handling challenges, memories and imagination. Every question must ask something different.
{theme_block}{exclusion_block}
Format as JSON array:
[{{"content": "the discussion question text"}}]
"""

PROMPT_TMPL_INSPIRATIONAL_QUOTE = """
Generate {count} REAL, VERIFIED inspirational quotes from a WIDE VARIETY of real historical or contemporary people (authors, leaders, scientists, athletes, entertainers, activists, philosophers).
{theme_block}{exclusion_block}
REQUIREMENTS:
- Every quote MUST include the author
- Only use quotes you are confident are accurately attributed
- Prefer lesser-known quotes over the most famous ones

Format as JSON array:
[{{"content": "quote text", "author": "Person Name"}}]
"""

PROMPT_TMPL_BY_SOURCE_TYPE = {
    SourceType.BIBLE_VERSE: PROMPT_TMPL_BIBLE_VERSE,
    SourceType.PROVERBS: PROMPT_TMPL_PROVERBS,
    SourceType.AFFIRMATION: PROMPT_TMPL_AFFIRMATION,
    SourceType.LIFE_LESSON: PROMPT_TMPL_LIFE_LESSON,
    SourceType.GRATITUDE_PROMPT: PROMPT_TMPL_GRATITUDE_PROMPT,
    SourceType.DISCUSSION_STARTER: PROMPT_TMPL_DISCUSSION_STARTER,
    SourceType.INSPIRATIONAL_QUOTE: PROMPT_TMPL_INSPIRATIONAL_QUOTE,
}

# ────────────────────────────────────────────────────────────────────
# Exclusion / theme fragments
# ────────────────────────────────────────────────────────────────────
PROMPT_THEME_BLOCK = "\nTHEME: every item must be clearly about {theme}.\n"

PROMPT_EXCLUDE_REFERENCES = (
    "\nIMPORTANT - DO NOT generate any of these verses or any verse inside these ranges (we already have them):\n"
    "{items}\n\nGenerate DIFFERENT verses not on this list.\n"
)

PROMPT_EXCLUDE_AUTHORS = (
    "\nWe already have quotes from: {items}.\n"
    "Prioritize quotes from OTHER people not on this list.\n"
)

PROMPT_EXCLUDE_SAMPLES = (
    "\nIMPORTANT - Generate DIFFERENT content from these existing items:\n"
    "{items}\n\nBe creative and generate fresh, original content.\n"
)

# ────────────────────────────────────────────────────────────────────
# Semantic duplicate judge
# ────────────────────────────────────────────────────────────────────
PROMPT_TMPL_JUDGE = """
You are checking a list of short texts for duplicates.

NEW ITEM:
"{candidate}"

EXISTING ITEMS:
{existing}

Is the NEW ITEM the same specific question or statement as ANY existing item, just worded differently?
Answer YES only if it asks or says the same specific thing. Sharing the same broad topic (for example both are about friendship) is NOT enough.

Answer with exactly one word: YES or NO.
"""
