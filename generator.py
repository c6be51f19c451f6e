"""
Candidate generation for the wildcard domain finder.

- Wildcard patterns (* = one character from the alphabet), odometer order
- Brute force over all labels of length 1..max_length
- TLD pairing and RFC-1035 style syntax validation
- Everything is lazy: nothing is materialised in bulk
"""

import itertools
import re
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from errors import ConfigError

CHARSET = "abcdefghijklmnopqrstuvwxyz0123456789"

WILDCARD = "*"

IANA_TLDS = [
    'com', 'net', 'org', 'edu', 'gov', 'mil', 'int',
    'ca', 'us', 'uk', 'de', 'fr', 'au', 'jp', 'cn', 'io', 'ai', 'co', 'me', 'tv', 'cc',
    'xyz', 'info', 'biz', 'name', 'pro', 'tech', 'dev', 'app', 'cloud', 'store', 'shop',
    'site', 'online', 'space', 'fun', 'live', 'world', 'today', 'news', 'media', 'social',
    'group', 'club', 'team', 'company', 'agency', 'solutions', 'systems', 'network',
    'software', 'digital', 'finance', 'capital', 'partners', 'ventures', 'consulting',
    'services', 'support', 'help', 'care', 'health', 'clinic', 'law', 'legal',
    'design', 'photo', 'photos', 'gallery', 'art', 'music', 'video', 'games', 'game',
    'blog', 'wiki', 'school', 'academy', 'training', 'university', 'science',
    'research', 'energy', 'solar', 'green', 'eco', 'earth', 'bio', 'farm', 'garden',
    'coffee', 'pizza', 'bar', 'restaurant', 'kitchen', 'food', 'wine', 'beer',
    'fashion', 'style', 'beauty', 'spa', 'travel', 'vacations', 'holiday', 'flights',
    'hotel', 'rentals', 'cars', 'auto', 'car', 'bike', 'homes', 'house', 'realty',
    'estate', 'property', 'land', 'city', 'zone', 'global', 'africa', 'asia', 'europe',
]

PREMIUM_TLDS = ['com', 'net', 'org', 'io', 'ai', 'co', 'dev', 'app', 'xyz', 'tech']

DEFAULT_TLDS = ['com']

_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_TLD_RE = re.compile(r"^[a-z]{2,63}$")


# ------------------------------- Validation -------------------------------

def valid_label(label: str) -> bool:
    if not (1 <= len(label) <= 63):
        return False
    return bool(_LABEL_RE.match(label))


def is_valid_domain(domain: str) -> bool:
    """Syntax check only: 1..253 chars, >= 2 labels, alphabetic final label."""
    if not domain or len(domain) > 253:
        return False
    labels = domain.split(".")
    if len(labels) < 2:
        return False
    if not _TLD_RE.match(labels[-1]):
        return False
    return all(valid_label(lbl) for lbl in labels[:-1])


def split_domain(domain: str) -> Tuple[str, str]:
    """Return (name, tld); the name keeps every label but the last."""
    parts = domain.lower().split(".")
    tld = parts.pop() if len(parts) > 1 else ""
    return ".".join(parts), tld


# ------------------------------- Alphabet / TLDs -------------------------------

def normalize_alphabet(alphabet: str) -> str:
    seen = set()
    out = [c for c in (alphabet or "").lower() if not (c in seen or seen.add(c))]
    if not out:
        raise ConfigError("Alphabet is empty.")
    if WILDCARD in out or "." in out:
        raise ConfigError("Alphabet may not contain '*' or '.'.")
    return "".join(out)


def resolve_tlds(selection: Optional[Union[str, Sequence[str]]]) -> List[str]:
    """Turn 'all', 'premium', 'com,io' or a list into an ordered, de-duplicated TLD list."""
    if selection is None or selection == "" or selection == []:
        return list(DEFAULT_TLDS)
    if isinstance(selection, str):
        if selection.strip().lower() == "all":
            return list(IANA_TLDS)
        if selection.strip().lower() == "premium":
            return list(PREMIUM_TLDS)
        selection = selection.split(",")
    seen = set()
    tlds = []
    for t in selection:
        t = str(t).strip().lower().lstrip(".")
        if t and t not in seen:
            seen.add(t)
            tlds.append(t)
    return tlds or list(DEFAULT_TLDS)


# ------------------------------- Pattern Expander -------------------------------

class Pattern:
    """Immutable sequence of symbols: literal characters or the WILDCARD marker."""

    __slots__ = ("text", "symbols")

    def __init__(self, text: str):
        self.text = text
        self.symbols: Tuple[str, ...] = tuple(text)

    @classmethod
    def parse(cls, text: str) -> "Pattern":
        text = (text or "").strip().lower()
        if not text:
            raise ConfigError("Pattern is empty.")
        return cls(text)

    @property
    def wildcard_count(self) -> int:
        return sum(1 for s in self.symbols if s == WILDCARD)

    def __repr__(self) -> str:
        return f"Pattern({self.text!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Pattern) and other.text == self.text

    def __hash__(self) -> int:
        return hash(self.text)


def expand_pattern(pattern: Pattern, alphabet: str = CHARSET) -> Iterator[str]:
    """Yield one string per wildcard substitution, leftmost wildcard varying slowest."""
    choices = [alphabet if s == WILDCARD else s for s in pattern.symbols]
    for combo in itertools.product(*choices):
        yield "".join(combo)


def expand_brute_force(max_length: int, alphabet: str = CHARSET) -> Iterator[str]:
    """Yield every string of length 1..max_length, length-major, lexicographic within a length."""
    for length in range(1, max_length + 1):
        for combo in itertools.product(alphabet, repeat=length):
            yield "".join(combo)


# ------------------------------- Candidate Stream -------------------------------

class CandidateStream:
    """
    Pull-based iterator over valid candidate domains.

    Invalid candidates are dropped here and only show up in `invalid`;
    `yielded` counts what the consumer actually received.
    """

    def __init__(self, source: Iterable[str], mode: str, space_size: int):
        self._source = iter(source)
        self.mode = mode
        self.space_size = space_size
        self.invalid = 0
        self.yielded = 0

    def search_space_size(self) -> int:
        """Number of raw candidates the source can produce, invalid ones included."""
        return self.space_size

    def __iter__(self) -> "CandidateStream":
        return self

    def __next__(self) -> str:
        for domain in self._source:
            if not is_valid_domain(domain):
                self.invalid += 1
                continue
            self.yielded += 1
            return domain
        raise StopIteration

    @classmethod
    def from_pattern(cls, pattern: Union[str, Pattern], tlds: Sequence[str],
                     alphabet: str = CHARSET) -> "CandidateStream":
        if isinstance(pattern, str):
            pattern = Pattern.parse(pattern)
        text = pattern.text
        base = len(alphabet) ** pattern.wildcard_count
        if text.endswith(".*"):
            core = Pattern(text[:-2])
            size = len(alphabet) ** core.wildcard_count * len(tlds)
            return cls(_pair_with_tlds(expand_pattern(core, alphabet), tlds), "pattern", size)
        if "." in text:
            return cls(expand_pattern(pattern, alphabet), "pattern", base)
        return cls(_pair_with_tlds(expand_pattern(pattern, alphabet), tlds), "pattern", base * len(tlds))

    @classmethod
    def brute_force(cls, max_length: int, tlds: Sequence[str],
                    alphabet: str = CHARSET) -> "CandidateStream":
        size = sum(len(alphabet) ** k for k in range(1, max_length + 1)) * len(tlds)
        return cls(_pair_with_tlds(expand_brute_force(max_length, alphabet), tlds), "brute_force", size)


def _pair_with_tlds(labels: Iterable[str], tlds: Sequence[str]) -> Iterator[str]:
    for label in labels:
        for tld in tlds:
            yield f"{label}.{tld}"
