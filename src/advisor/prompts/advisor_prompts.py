"""
Prompt templates for the advisor.

The persona is fetched from **LangFuse Prompt Management** at runtime.
If it hasn't been created in LangFuse yet, the local fallback (defined
below) is used instead, so the system works out-of-the-box.

To manage prompts via LangFuse Cloud:
  1. Open LangFuse → Prompts → + New Prompt
  2. Create a text prompt named as in LANGFUSE_PROMPT_NAMES
  3. Set a version to "production" to make it active

Prompt roles:
  1. PERSONA   - Yuri's voice, capabilities and hard rules (every chat call)
  2. CONTEXT   - user memory rendered as labelled sections
  3. TITLE     - 4-6 word conversation title (background)
  4. INSIGHT   - specialist extraction request (background)
"""

from typing import List, Optional, Sequence

from advisor.specialists import get_specialist
from infrastructure.config import PROMPT_TOPICS_LIMIT
from infrastructure.observability import fetch_prompt
from memory.schemas import Message, UserContext


# LangFuse prompt names → create these in your dashboard

LANGFUSE_PROMPT_NAMES = {
    "persona": "yuri-advisor-persona",
}

TITLE_INPUT_CHARS = 200
INSIGHT_INPUT_CHARS = 500


# 1. PERSONA (fallback)

_PERSONA_FALLBACK = """\
You are Yuri (유리), Seoul Sister's AI beauty advisor with 20+ years in the Korean skincare industry. "Yuri" means "glass" in Korean, a reference to 유리 피부 (glass skin). You've worked across Korean formulation labs, cosmetic chemistry, and the K-beauty retail ecosystem.

## Your Voice
Think: "cool older sister who works in K-beauty R&D in Seoul." Confident, warm, specific, occasionally surprising. NOT a chatbot, NOT a beauty blogger, NOT a professor.

- Lead with the answer; never open with "Great question!" or similar filler
- Every response should contain at least one insight they can't easily find on a blog or Reddit
- Use Korean terms naturally with brief translations: 화해 (Hwahae, Korea's top review app), 피부과 (dermatology), 미백 (brightening), 기능성화장품 (functional cosmetics)
- Be specific about formulations: active forms, pH levels, concentrations, and WHY they matter
- Reference how products are perceived in Korea, not just by Western influencers
- Say "I don't know" when you don't. Never fabricate product data, ingredients, or formulation details

## Your Capabilities
You orchestrate 6 specialist agents who provide deep domain expertise:
1. **Ingredient Analyst** - formulation science, active forms, pH dependencies, ingredient interactions
2. **Routine Architect** - personalized AM/PM routines, layering order, skin cycling protocols
3. **Authenticity Investigator** - counterfeit detection, batch code verification, seller trust signals
4. **Trend Scout** - Korean market trends, Hwahae/Olive Young rankings, emerging ingredients
5. **Budget Optimizer** - Korea vs US price gaps, dupes with identical actives, value analysis
6. **Sensitivity Guardian** - allergy cross-reactivity, barrier repair, gentle alternatives

You can also analyze product labels from photos (Korean text translation + ingredient analysis).

## Response Guidelines
- ALWAYS personalize based on the user's skin profile (provided in context)
- If no skin profile exists, gently encourage them to complete one, but still help with what you know
- When recommending products, be specific: exact product name, key active + concentration if known, approximate price, and WHY it works for their profile
- Flag ingredient conflicts proactively; don't wait for the user to ask
- Keep responses scannable: **bold** for product names and key terms, bullet points for lists, short paragraphs
- End with a specific follow-up question tied to what they just told you
- Seoul Sister is NOT a store. Direct users to verified third-party retailers (Olive Young Global, YesStyle, StyleVana, Soko Glam)

## Important Rules
- NEVER diagnose medical conditions; recommend a 피부과 (dermatologist) for persistent issues
- NEVER guarantee results; skincare is individual and what works varies
- ALWAYS respect known allergies and flag any potential allergen in recommendations
- If a user shares a photo, analyze it carefully but remind them that photo analysis has limitations
- If asked about something outside K-beauty, gently redirect
"""


def get_persona() -> str:
    """Blocking LangFuse fetch of the persona text; call it off the event loop."""
    return fetch_prompt(LANGFUSE_PROMPT_NAMES["persona"], fallback=_PERSONA_FALLBACK)


# 2. CONTEXT - user memory sections


def _bullets(items: Sequence[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def format_context_for_prompt(context: UserContext) -> str:
    """
    Render the user's memory as labelled prose sections.

    The skin profile section is always present (a nudge when missing);
    every other section is omitted when it would be empty.
    """
    sections: List[str] = []

    profile = context.skin_profile
    if profile is not None:
        onboarded = (
            " (built during your onboarding conversation; you already know this user!)"
            if profile.onboarding_completed else ""
        )
        sections.append(
            f"## User's Skin Profile{onboarded}\n"
            f"- Skin type: {profile.skin_type}\n"
            f"- Concerns: {', '.join(profile.skin_concerns) or 'none specified'}\n"
            f"- Allergies: {', '.join(profile.allergies) or 'none known'}\n"
            f"- Fitzpatrick scale: {profile.fitzpatrick_scale or 'unknown'}\n"
            f"- Climate: {profile.climate or 'unknown'}\n"
            f"- Age range: {profile.age_range or 'unknown'}\n"
            f"- Budget: {profile.budget_range or 'unknown'}\n"
            f"- Experience level: {profile.experience_level or 'unknown'}"
        )
    else:
        sections.append(
            "## User's Skin Profile\n"
            "Not yet created. Encourage them to complete their skin profile for "
            "personalized advice. You can suggest they go through the onboarding "
            "conversation with you."
        )

    if context.routine_products:
        sections.append(
            "## Current Routine Products\n"
            + _bullets([p.describe() for p in context.routine_products])
        )

    holy_grails = [r.product_name for r in context.product_reactions if r.reaction == "holy_grail"]
    broke_out = [r.product_name for r in context.product_reactions if r.reaction == "broke_me_out"]
    if holy_grails:
        sections.append("## Holy Grail Products\n" + _bullets(holy_grails))
    if broke_out:
        sections.append("## Products That Caused Reactions\n" + _bullets(broke_out))

    if context.known_allergies:
        sections.append(
            "## IMPORTANT: Known Allergies/Sensitivities\n"
            "ALWAYS check for these before recommending any product:\n"
            + _bullets(context.known_allergies)
        )

    if context.recent_conversations:
        topics = [
            f"{c.summary} ({c.specialist_type or 'general'})"
            for c in context.recent_conversations[:PROMPT_TOPICS_LIMIT]
        ]
        sections.append("## Recent Conversation Topics\n" + _bullets(topics))

    if context.learning_insights:
        sections.append(
            "## Learning Engine Insights (From Community Data)\n"
            "Use these data-backed insights to personalize your advice. "
            "Cite the data when relevant:\n"
            + _bullets([f"[{i.type}] {i.summary}" for i in context.learning_insights])
        )

    return "\n\n".join(sections)


def build_system_prompt(
    context: UserContext,
    specialist_type: Optional[str],
    history: Sequence[Message] = (),
    persona: Optional[str] = None,
) -> str:
    """
    Assemble persona + USER CONTEXT + optional ACTIVE SPECIALIST block.

    ``history`` travels as chat messages, not in the system prompt; it is
    accepted here so callers hand over the same inputs the model sees.
    No LangFuse lookup happens here: resolve ``persona`` with
    ``get_persona()`` beforehand, otherwise the local fallback is used.
    """
    parts = [persona if persona is not None else _PERSONA_FALLBACK]

    context_text = format_context_for_prompt(context)
    if context_text:
        parts.append(f"\n---\n# USER CONTEXT\n{context_text}")

    specialist = get_specialist(specialist_type)
    if specialist is not None:
        parts.append(
            f"\n---\n# ACTIVE SPECIALIST: {specialist.name}\n"
            f"You are now operating with the {specialist.name} specialist's deep "
            f"expertise. Apply this specialized knowledge:\n\n{specialist.system_prompt}"
        )

    return "\n".join(parts)


# 3. TITLE


def build_title_prompt(user_message: str) -> str:
    return (
        "Generate a very short title (4-6 words max) for a K-beauty conversation "
        f'that starts with this question: "{user_message[:TITLE_INPUT_CHARS]}"\n\n'
        "Return ONLY the title text, nothing else. No quotes."
    )


# 4. INSIGHT


def build_insight_prompt(
    specialist_type: str, user_message: str, assistant_response: str
) -> str:
    """Extraction request for one exchange; inputs truncated to 500 chars."""
    specialist = get_specialist(specialist_type)
    if specialist is None:
        raise ValueError(f"Unknown specialist: {specialist_type}")
    return (
        f"{specialist.extraction_prompt}\n\n"
        f"User message: {user_message[:INSIGHT_INPUT_CHARS]}\n\n"
        f"Assistant response: {assistant_response[:INSIGHT_INPUT_CHARS]}\n\n"
        "Return ONLY valid JSON, no other text."
    )
