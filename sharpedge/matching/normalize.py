"""
Team-name normalisation and title parsing.

Shared by every matching strategy and by the consensus engine, which
locates outcomes per bookmaker by normalised name.
"""

import re
import unicodedata
from difflib import SequenceMatcher
from typing import Optional

from sharpedge.models.teams import SportProfile


# Club-form suffixes/prefixes that carry no identity
SUFFIX_TOKENS = frozenset({"fc", "cf", "afc", "sc", "ac", "fk", "cd", "sk", "bk", "ssc"})

# Filler words in prediction-market titles
TITLE_STOPWORDS = frozenset({
    "will", "the", "beat", "win", "defeat", "vs", "v", "versus", "at",
    "game", "match", "to", "against", "who", "or", "over", "under",
})

DRAW_OUTCOMES = frozenset({"draw", "tie", "the draw"})

# Shorter roster aliases are tickers ("bos", "lal")
MIN_GUARD_ALIAS_LENGTH = 4

_TEAMS_PATTERN = re.compile(
    r"^\s*(?P<a>.+?)\s+(?:vs\.?|v\.?|@|versus)\s+(?P<b>.+?)\s*$",
    re.IGNORECASE,
)
_TRAILING_SUFFIX = re.compile(r"\s+-\s+.*$")
_LEAGUE_PREFIX = re.compile(r"^[A-Za-z0-9 ]{2,12}:\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_name(name: str) -> str:
    """
    Normalise a team or outcome label for comparison.

    "Montréal Canadiens" -> "montreal canadiens"
    "Arsenal FC" -> "arsenal"
    "St. Louis Blues" -> "st louis blues"
    """
    if not name:
        return ""
    text = strip_diacritics(name).lower()
    text = text.replace("&", " and ")
    text = _NON_ALNUM.sub(" ", text)
    tokens = [t for t in text.split() if t not in SUFFIX_TOKENS]
    return " ".join(tokens)


def name_tokens(name: str) -> set[str]:
    normalized = normalize_name(name)
    return set(normalized.split()) if normalized else set()


def title_tokens(title: str) -> set[str]:
    """Normalised title tokens with filler words removed."""
    return {t for t in name_tokens(title) if t not in TITLE_STOPWORDS}


def is_draw_outcome(name: str) -> bool:
    return normalize_name(name) in DRAW_OUTCOMES


def split_teams(title: str) -> Optional[tuple[str, str]]:
    """
    Parse "Team A vs Team B" style titles.

    Accepts vs / vs. / v / v. / @ / versus separators, ignores a trailing
    "- suffix" and a short "League: " prefix.

    Returns:
        (side_a, side_b) in title order, or None if the title doesn't parse
    """
    if not title:
        return None
    text = _TRAILING_SUFFIX.sub("", title.strip())
    text = _LEAGUE_PREFIX.sub("", text)
    text = text.rstrip("?!. ")
    match = _TEAMS_PATTERN.match(text)
    if not match:
        return None
    side_a = match.group("a").strip()
    side_b = match.group("b").strip()
    if not normalize_name(side_a) or not normalize_name(side_b):
        return None
    return side_a, side_b


def nickname(full_name: str) -> str:
    """
    Last significant word of a team name.

    "Toronto Maple Leafs" -> "leafs"
    "Philadelphia 76ers" -> "76ers"
    """
    parts = normalize_name(full_name).split()
    significant = [p for p in parts if len(p) > 2]
    if significant:
        return significant[-1]
    return parts[-1] if parts else ""


def city(full_name: str) -> str:
    """Everything but the nickname: "Los Angeles Kings" -> "los angeles"."""
    parts = normalize_name(full_name).split()
    if len(parts) <= 1:
        return ""
    return " ".join(parts[:-1])


def contains_term(text: str, term: str) -> bool:
    """Whole-word presence of a normalised term in normalised text."""
    term_norm = normalize_name(term)
    if not term_norm:
        return False
    return f" {term_norm} " in f" {normalize_name(text)} "


def dice_similarity(a: set[str], b: set[str]) -> float:
    """Token-overlap (Sørensen-Dice) similarity."""
    if not a or not b:
        return 0.0
    return 2 * len(a & b) / (len(a) + len(b))


def title_similarity(title: str, candidate: str) -> float:
    """
    Similarity between an event title and a "home vs away" string.

    Best of token overlap and character-sequence ratio, both computed
    with filler words removed.
    """
    a_tokens = title_tokens(title)
    b_tokens = title_tokens(candidate)
    token_score = dice_similarity(a_tokens, b_tokens)
    seq_score = SequenceMatcher(
        None, " ".join(sorted(a_tokens)), " ".join(sorted(b_tokens))
    ).ratio()
    return max(token_score, seq_score)


# =============================================================================
# Roster expansion
# =============================================================================

def build_alias_map(profile: SportProfile) -> dict[str, str]:
    """
    Reverse map of normalised abbreviation / alias / nickname / city to the
    canonical team name.

    Keys that point at more than one team ("kings", "los angeles", "new york")
    are dropped; full canonical names always resolve to themselves.
    """
    candidates: dict[str, set[str]] = {}

    def add(key: str, canonical: str) -> None:
        key_norm = normalize_name(key)
        if key_norm:
            candidates.setdefault(key_norm, set()).add(canonical)

    for canonical, aliases in profile.teams.items():
        for alias in aliases:
            add(alias, canonical)
        add(nickname(canonical), canonical)
        add(city(canonical), canonical)

    alias_map = {key: next(iter(teams)) for key, teams in candidates.items() if len(teams) == 1}
    for canonical in profile.teams:
        alias_map[normalize_name(canonical)] = canonical
    return alias_map


def resolve_alias(raw: str, alias_map: dict[str, str]) -> Optional[str]:
    """Resolve a raw team label to a canonical name, or None."""
    raw_norm = normalize_name(raw)
    if not raw_norm:
        return None
    if raw_norm in alias_map:
        return alias_map[raw_norm]
    # "LA Lakers" style: try the nickname alone
    return alias_map.get(nickname(raw))


def guard_terms(
    team_name: str,
    profile: Optional[SportProfile],
    alias_map: Optional[dict[str, str]] = None,
) -> set[str]:
    """
    Terms whose presence in the event text vouches for a team.

    The team's nickname plus, when the team is on the roster, its
    registered word aliases ("habs", "miami"). Tickers such as "bos" are
    left out.
    Pass a prebuilt alias_map to avoid rebuilding it per call.
    """
    terms = {nickname(team_name)}
    if profile is None:
        return {t for t in terms if t}
    if alias_map is None:
        alias_map = build_alias_map(profile)
    canonical = resolve_alias(team_name, alias_map)
    if canonical:
        terms.add(nickname(canonical))
        terms.update(
            normalize_name(alias) for alias in profile.teams.get(canonical, ())
            if len(normalize_name(alias)) >= MIN_GUARD_ALIAS_LENGTH
        )
    return {t for t in terms if t}


def team_named_in(
    text: str,
    team_name: str,
    profile: Optional[SportProfile],
    alias_map: Optional[dict[str, str]] = None,
) -> bool:
    return any(contains_term(text, term) for term in guard_terms(team_name, profile, alias_map))
