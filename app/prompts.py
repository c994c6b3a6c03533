"""
Prompt construction for the "Gennie" birthday message writer.

Everything here is deterministic: the same recipient description always
produces the same prompts.
"""

from typing import NamedTuple, Optional, Sequence

FREE_MESSAGE_MAX_TOKENS = 200
PREMIUM_MESSAGES_MAX_TOKENS = 800
PREMIUM_MESSAGE_COUNT = 5

PREMIUM_TONES = ("heartfelt", "funny", "inspirational", "warm", "celebratory")


class RecipientDescription(NamedTuple):
    name: str
    relationship_role: str
    personality: str
    quirks: Optional[str] = None
    gender: Optional[str] = None


class ImageTheme(NamedTuple):
    name: str
    keywords: Sequence[str]
    scene: str


# Checked in order, first match wins
IMAGE_THEMES = (
    ImageTheme(
        "equestrian",
        ("horse", "riding", "equestrian", "rider"),
        "A rustic western-style birthday scene with horseshoes as decorative elements, "
        "cowboy boots as vases holding wildflowers, and a vintage saddle as backdrop. "
        "Western color palette with earth tones, leather textures, and rope details.",
    ),
    ImageTheme(
        "country",
        ("trailer", "country", "rustic"),
        "A charming country-style birthday setup with mason jar centerpieces, burlap and "
        "lace decorations, wooden accents, and wildflower arrangements. Rustic farmhouse aesthetic.",
    ),
    ImageTheme(
        "feline",
        ("cat", "feline"),
        "An elegant birthday scene with subtle cat-themed elements like paw print confetti, "
        "whisker-shaped candles, and sophisticated feline silhouettes.",
    ),
    ImageTheme(
        "horticultural",
        ("garden", "flower", "plant"),
        "A botanical birthday celebration with lush garden flowers, potted plants, "
        "floral arrangements, and natural greenery.",
    ),
    ImageTheme(
        "musical",
        ("music", "sing", "instrument"),
        "A musical birthday theme with vintage instruments, sheet music decorations, "
        "and musical note confetti.",
    ),
    ImageTheme(
        "artistic",
        ("art", "paint", "creative"),
        "An artistic birthday scene with paint palettes, brushes, colorful splatters, "
        "and creative studio elements.",
    ),
    ImageTheme(
        "coffee",
        ("coffee", "cafe"),
        "A cozy coffee-themed birthday with vintage coffee cups, coffee beans, "
        "cafe-style decorations, and warm lighting.",
    ),
    ImageTheme(
        "literary",
        ("book", "read", "literature"),
        "A literary birthday scene with vintage books, reading glasses, "
        "bookshelf backgrounds, and paper decorations.",
    ),
)

CLASSIC_SCENE = (
    "A classic elegant birthday celebration with sophisticated decorations, "
    "fine details, and tasteful color coordination."
)

PERSONALITY_STYLES = (
    (("funny", "humorous"), "Add playful, whimsical elements and bright, cheerful colors."),
    (("competitive", "passionate"), "Include bold, energetic color schemes with dynamic compositions."),
    (("stubborn", "strong"), "Use strong, confident design elements with bold contrasts."),
)

IMAGE_PROMPT_PREFIX = "Create a sophisticated birthday celebration image featuring: "
IMAGE_PROMPT_SUFFIX = (
    "Professional photography style, high resolution, clean composition, soft lighting, "
    "birthday candles, and celebration elements. No text or words in the image. "
    "Focus on visual storytelling through objects and themes."
)

FREE_SYSTEM_PROMPT = """You are Gennie, a witty, creative birthday message writer who specializes in personalized, humorous messages that feel authentic and heartfelt. Your messages should:
- Be genuinely funny without being mean-spirited
- Reference the person's personality traits and quirks naturally
- Feel like they came from someone who really knows them
- Balance humor with genuine affection
- Be 2-3 sentences long
- Use emojis sparingly but effectively

Create a birthday message that would make them laugh out loud and screenshot to share."""

PREMIUM_SYSTEM_PROMPT = """You are Gennie, an expert birthday message creator. Create {count} different premium birthday messages for the same person. Each message should:
- Be unique and different from the others
- Be 2-3 sentences long
- Include relevant emojis naturally
- Reference the recipient's characteristics
- Have different tones ({tones})
- Feel personal and authentic

Return only the messages, numbered 1-{count}, one per line."""


def _describe(recipient: RecipientDescription) -> str:
    lines = [
        f"They are my: {recipient.relationship_role}",
        f"Their personality: {recipient.personality}",
    ]
    if recipient.quirks:
        lines.append(f"Their unique quirks: {recipient.quirks}")
    if recipient.gender:
        lines.append(f"Gender: {recipient.gender}")
    return "\n".join(lines)


def build_message_prompts(recipient: RecipientDescription) -> tuple[str, str]:
    """Return (system, user) prompts for one free message."""
    user_prompt = (
        f"Create a hilarious yet heartfelt birthday message for: {recipient.name}\n"
        f"{_describe(recipient)}\n\n"
        "Make it funny, personal, and memorable - something they'd actually want to share!"
    )
    return FREE_SYSTEM_PROMPT, user_prompt


def build_premium_prompts(
    recipient: RecipientDescription, count: int = PREMIUM_MESSAGE_COUNT
) -> tuple[str, str]:
    """Return (system, user) prompts asking for `count` numbered variants."""
    system_prompt = PREMIUM_SYSTEM_PROMPT.format(
        count=count, tones=", ".join(PREMIUM_TONES)
    )
    user_prompt = (
        f"Create {count} premium birthday messages for: {recipient.name}\n"
        f"{_describe(recipient)}\n\n"
        "Make each message unique with different emotional tones!"
    )
    return system_prompt, user_prompt


def infer_image_theme(personality: str, quirks: Optional[str] = None) -> Optional[ImageTheme]:
    """First theme whose keywords appear in the personality or quirks text."""
    text = f"{personality} {quirks or ''}".lower()
    for theme in IMAGE_THEMES:
        if any(keyword in text for keyword in theme.keywords):
            return theme
    return None


def build_image_prompt(recipient: RecipientDescription) -> str:
    theme = infer_image_theme(recipient.personality, recipient.quirks)
    parts = [IMAGE_PROMPT_PREFIX + (theme.scene if theme else CLASSIC_SCENE)]

    personality = recipient.personality.lower()
    for keywords, style in PERSONALITY_STYLES:
        if any(keyword in personality for keyword in keywords):
            parts.append(style)

    parts.append(IMAGE_PROMPT_SUFFIX)
    return " ".join(parts)


def fallback_message(name: str) -> str:
    return (
        f"Happy Birthday {name}! 🎉 Hope your special day is filled with joy, laughter, "
        "and all your favorite things. You're absolutely wonderful and deserve the best celebration!"
    )
