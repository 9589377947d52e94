"""Deterministic entity mention detection.

Finds entity-like spans with regex heuristics: model-supplied hints,
``@handle`` / ``#tag`` markers, quoted strings, and capitalized words or
word sequences. Detection is pure; resolution against the registry lives in
``memorylane.entities.resolver``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from memorylane.models import EntityHint, EntityMention, EntityType, slugify

# Capitalized word sequences (2-5 words), e.g. "Jane Doe", "New York City"
MULTIWORD_PATTERN = re.compile(r"\b([A-Z][\w.+-]*(?:\s+[A-Z][\w.+-]*){1,4})\b")
# Any capitalized token
CAPITALIZED_PATTERN = re.compile(r"\b([A-Z][\w.+-]*[\w+])\b|\b([A-Z])\b")
MARKER_PATTERN = re.compile(r"(?<![\w@#])([@#])([A-Za-z][\w.-]*[\w]|[A-Za-z])")
QUOTED_PATTERN = re.compile(r"[\"“]([^\"“”\n]{2,60})[\"”]")
MAX_QUOTED_WORDS = 4
QUERY_PREFIX_PATTERN = re.compile(
    r"\b(?i:(project|person|org|organization|company|tech|technology|location)):\s*"
    r"([\w.+-]+(?:\s+[A-Z][\w.+-]*)*)"
)

ORGANIZATION_SUFFIXES = frozenset(
    {"inc", "corp", "corporation", "llc", "ltd", "labs", "gmbh", "foundation", "company", "co"}
)
LOCATION_WORDS = frozenset(
    {"city", "street", "st", "avenue", "county", "state", "province", "river", "lake", "valley"}
)
PROJECT_WORDS = frozenset({"project", "app", "service", "api", "platform", "sdk", "plugin", "bot"})
TECHNOLOGY_LEXICON = frozenset(
    {
        "python", "javascript", "typescript", "rust", "go", "java", "kotlin", "swift",
        "react", "vue", "svelte", "django", "flask", "fastapi", "node", "electron",
        "postgres", "postgresql", "mysql", "sqlite", "redis", "mongodb", "qdrant",
        "docker", "kubernetes", "terraform", "linux", "git", "github", "aws", "gcp",
        "azure", "ollama", "openai", "claude", "llama", "pytest", "graphql", "kafka",
    }
)
STOPWORDS = frozenset(
    {
        "i", "a", "an", "the", "we", "you", "he", "she", "it", "they", "this", "that",
        "these", "those", "my", "our", "your", "his", "her", "its", "their", "and", "or",
        "but", "if", "then", "so", "yes", "no", "ok", "okay", "please", "thanks",
        "user", "assistant", "monday", "tuesday", "wednesday", "thursday", "friday",
        "saturday", "sunday", "january", "february", "march", "april", "may", "june",
        "july", "august", "september", "october", "november", "december", "what",
        "why", "how", "when", "where", "which", "who", "also", "use", "using",
    }
)

HINT_TYPE_ALIASES: dict[str, EntityType] = {
    "person": "person",
    "people": "person",
    "project": "project",
    "product": "project",
    "organization": "organization",
    "organisation": "organization",
    "org": "organization",
    "company": "organization",
    "business": "organization",
    "location": "location",
    "place": "location",
    "technology": "technology",
    "tech": "technology",
    "tool": "technology",
}


def _is_mixed_case(token: str) -> bool:
    """PostgreSQL, GitHub, AWS, iOS-like tokens."""
    letters = [c for c in token if c.isalpha()]
    if len(letters) < 2:
        return False
    if all(c.isupper() for c in letters):
        return True
    return any(c.isupper() for c in letters[1:])


def _is_title_word(word: str) -> bool:
    return word.isalpha() and word[0].isupper() and word[1:].islower()


def _is_stopword(word: str) -> bool:
    return word.lower() in STOPWORDS


def infer_entity_type(text: str, hint: str | None = None) -> EntityType:
    """Infer an entity type from a hint or the surface form.

    Precedence: explicit hint, organization suffix, location word, project
    word, person name shape (2-3 title-case words), technology, then project.
    """
    if hint:
        mapped = HINT_TYPE_ALIASES.get(hint.strip().lower())
        if mapped:
            return mapped

    words = text.replace(",", " ").split()
    lowered = [w.lower().rstrip(".") for w in words]
    if lowered and lowered[-1] in ORGANIZATION_SUFFIXES and len(words) > 1:
        return "organization"
    if any(w in LOCATION_WORDS for w in lowered[1:]):
        return "location"
    if len(words) > 1 and lowered[-1] in PROJECT_WORDS:
        return "project"
    if 2 <= len(words) <= 3 and all(_is_title_word(w) for w in words):
        if not any(w in TECHNOLOGY_LEXICON for w in lowered):
            return "person"
    if any(w in TECHNOLOGY_LEXICON for w in lowered):
        return "technology"
    if len(words) == 1 and _is_mixed_case(text):
        return "technology"
    return "project"


class _MentionCollector:
    """Ordered, slug-deduplicated accumulator of mentions."""

    def __init__(self) -> None:
        self.mentions: list[EntityMention] = []
        self._keys: set[str] = set()
        self._words: set[str] = set()

    def add(
        self, text: str, entity_type: EntityType, source: str, slug: str | None = None
    ) -> None:
        """Collect a mention keyed by ``slug`` when given, else by its text."""
        text = text.strip().strip("'\".,;:!?()[]{}")
        own_key = slugify(text)
        key = slugify(slug) if slug else own_key
        if not own_key or not key or _is_stopword(text):
            return
        if key in self._keys or own_key in self._keys:
            return
        self._keys.update((key, own_key))
        self._words.update(w.lower() for w in text.split())
        self.mentions.append(
            EntityMention(text=text, key=key, entity_type=entity_type, source=source)  # type: ignore[arg-type]
        )

    def covers(self, token: str) -> bool:
        """Whether ``token`` is already part of a collected mention."""
        return token.lower() in self._words


def _starts_sentence(text: str, index: int) -> bool:
    before = text[:index].rstrip(" \t")
    return not before or before[-1] in ".!?:\n"


def find_mentions(text: str, hints: Iterable[EntityHint] = ()) -> list[EntityMention]:
    """Find entity mentions in ``text``.

    Sources are tried in priority order and the first source to claim a slug
    wins: hints, ``@``/``#`` markers, quoted strings, capitalized multi-word
    sequences, mixed-case or acronym tokens, then other capitalized tokens
    that do not start a sentence and are not stopwords.

    Args:
        text: Text to scan (typically title and content).
        hints: Entity hints supplied by the extractor.

    Returns:
        Mentions in discovery order, unique by slug.
    """
    collector = _MentionCollector()

    for hint in hints:
        collector.add(hint.name, infer_entity_type(hint.name, hint.type), "hint", hint.slug)

    for match in MARKER_PATTERN.finditer(text):
        marker, name = match.groups()
        collector.add(name, "person" if marker == "@" else "project", "marker")

    for match in QUOTED_PATTERN.finditer(text):
        quoted = match.group(1)
        if any(c.isalpha() for c in quoted) and len(quoted.split()) <= MAX_QUOTED_WORDS:
            collector.add(quoted, infer_entity_type(quoted), "quoted")

    for match in MULTIWORD_PATTERN.finditer(text):
        words = match.group(1).split()
        # Drop a leading sentence-initial stopword ("The Atlas Project")
        while words and _is_stopword(words[0]):
            words = words[1:]
        if len(words) >= 2:
            phrase = " ".join(words)
            collector.add(phrase, infer_entity_type(phrase), "proper_noun")

    for match in CAPITALIZED_PATTERN.finditer(text):
        token = match.group(1) or match.group(2)
        if collector.covers(token):
            continue
        if _is_mixed_case(token):
            collector.add(token, infer_entity_type(token), "proper_noun")
        elif not _starts_sentence(text, match.start()) and not _is_stopword(token):
            collector.add(token, infer_entity_type(token), "proper_noun")

    return collector.mentions


def find_query_entities(query: str) -> list[EntityMention]:
    """Find entity mentions in a retrieval query.

    In addition to ``find_mentions``, understands explicit prefixes such as
    ``project: Atlas`` and ``person: Jane``. Prefixed names are typed by
    their prefix and take precedence.
    """
    hints = [
        EntityHint(raw=match.group(2), type=match.group(1))
        for match in QUERY_PREFIX_PATTERN.finditer(query)
    ]
    remainder = QUERY_PREFIX_PATTERN.sub(" ", query)
    return find_mentions(remainder, hints)
