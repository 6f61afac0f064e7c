"""Prompt templates for catalog enrichment."""

# Per-field extraction guidance used in the batched extraction prompt
FIELD_INSTRUCTIONS = {
    "cultivar_detail": (
        "Coffee variety/cultivar names such as Typica, Bourbon, Caturra, Geisha or SL28. "
        "List multiple varieties separated by commas."
    ),
    "processing": (
        "Processing method using standard terms: Washed, Natural, Honey, Semi-washed, "
        "Wet-hulled, Anaerobic, etc."
    ),
    "region": (
        'Geographical origin. Format as "Region, Country" when both are available '
        '(e.g. "Huila, Colombia").'
    ),
    "grade": (
        'Grade or elevation: altitude (e.g. "1,500-1,800 masl"), grade classification '
        '(e.g. "AA", "SHB", "Grade 1") or screen size (e.g. "17/18").'
    ),
    "roast_recs": (
        "Roasting recommendations: suggested roast levels from Light to Dark, or specific "
        "roasting guidance."
    ),
    "drying_method": (
        "Drying technique such as Sun-dried, Patio-dried, Mechanical drying, Raised beds, "
        "African beds or Greenhouse drying."
    ),
    "lot_size": 'Size of the lot with its unit (e.g. "150 bags", "3,000 lbs").',
    "bag_size": 'Individual bag weight (e.g. "60kg", "69kg", "150lb").',
    "packaging": "Packaging details: jute, GrainPro, vacuum-sealed or other bag specifications.",
    "appearance": "Green bean appearance: size, color, uniformity, defects.",
    "type": (
        "Importer name, or how the coffee is imported "
        '(e.g. "Farm Gate", "Direct Trade", "Organic/Fair Trade Cert.").'
    ),
}


EXTRACTION_PROMPT_TEMPLATE = """Extract the following green coffee information fields from the provided descriptions:

{field_lines}

AVAILABLE COFFEE INFORMATION:
{source_text}

RULES:
1. Only extract information that is explicitly mentioned in the provided text
2. Use null for any field where the information is not clearly available
3. Be conservative - only fill a field when you are confident about it

Return a single JSON object whose keys are exactly: {field_names}
Output ONLY the JSON object, no markdown code blocks or additional text."""


SUMMARY_PROMPT_TEMPLATE = """Write a factual description of this green coffee for a coffee buyer.

AVAILABLE COFFEE INFORMATION:
{source_text}

RULES:
1. Between {min_words} and {max_words} words
2. Describe origin, processing and cup character using only the information above
3. No marketing language, prices, availability or stock information
4. Plain prose in a single paragraph, no headings or lists

Output ONLY the description text."""


TASTING_PROFILE_PROMPT_TEMPLATE = """Rate this green coffee's expected cup on five attributes using the descriptions below.

AVAILABLE COFFEE INFORMATION:
{source_text}

For each attribute give:
- "score": integer from 1 (weak) to 5 (exceptional)
- "tag": 1-3 lowercase words describing it (letters, spaces and hyphens only)
- "color": a hex color "#rrggbb" that evokes the tag

You MUST use EXACTLY this JSON structure:

{{
  "fragrance_aroma": {{"score": 1-5, "tag": "string", "color": "#rrggbb"}},
  "flavor": {{"score": 1-5, "tag": "string", "color": "#rrggbb"}},
  "acidity": {{"score": 1-5, "tag": "string", "color": "#rrggbb"}},
  "body": {{"score": 1-5, "tag": "string", "color": "#rrggbb"}},
  "sweetness": {{"score": 1-5, "tag": "string", "color": "#rrggbb"}}
}}

Output ONLY the JSON object, no markdown code blocks or additional text."""


def build_source_text(
    description_long: str | None,
    description_short: str | None,
    notes: str | None,
    notes_label: str = "Farm Notes",
) -> str:
    """
    Join the available free-text sources into one labelled block.

    Returns:
        The joined text, or an empty string if every source is empty.
    """
    parts = [
        (f"Long Description: {description_long.strip()}" if description_long and description_long.strip() else None),
        (f"Short Description: {description_short.strip()}" if description_short and description_short.strip() else None),
        (f"{notes_label}: {notes.strip()}" if notes and notes.strip() else None),
    ]
    return "\n\n".join(part for part in parts if part)


def build_extraction_prompt(fields: list[str], source_text: str) -> str:
    """
    Build one extraction prompt covering every requested field.

    Args:
        fields: Catalog field names to extract.
        source_text: Output of build_source_text.

    Returns:
        The formatted prompt string.
    """
    field_lines = "\n".join(
        f"- {name}: {FIELD_INSTRUCTIONS.get(name, 'Extract relevant information')}" for name in fields
    )
    return EXTRACTION_PROMPT_TEMPLATE.format(
        field_lines=field_lines,
        source_text=source_text,
        field_names=", ".join(fields),
    )


def build_summary_prompt(source_text: str, min_words: int = 20, max_words: int = 100) -> str:
    """Build the description prompt."""
    return SUMMARY_PROMPT_TEMPLATE.format(
        source_text=source_text,
        min_words=min_words,
        max_words=max_words,
    )


def build_tasting_profile_prompt(source_text: str) -> str:
    """Build the five-attribute tasting profile prompt."""
    return TASTING_PROFILE_PROMPT_TEMPLATE.format(source_text=source_text)
