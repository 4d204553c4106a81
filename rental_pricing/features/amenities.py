"""
Amenity vectorization.

Turns the free-text `amenities` field of each listing (a JSON-encoded list of
phrases) into a fixed set of boolean columns shared by the whole corpus.

Two phases:
1. fit(): scan the corpus, fix the raw phrase vocabulary and the final
   column set (canonical amenities + unclaimed phrases)
2. transform(): expand any listing against that fixed vocabulary

Consolidation is an ordered table of AmenityRule entries. Each vocabulary
phrase is claimed by the first rule it matches; claimed phrases feed the
canonical flag and never become columns of their own.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
from sklearn.exceptions import NotFittedError

logger = logging.getLogger(__name__)

QUOTED_ENTRY = re.compile(r'"((?:[^"\\]|\\.)*)"')
NON_ALNUM = re.compile(r'[^0-9A-Za-z]+')


# =============================================================================
# CONSOLIDATION RULES
# =============================================================================

@dataclass(frozen=True)
class AmenityRule:
    """
    Maps a family of raw amenity phrases onto one canonical flag.

    A phrase matches when (case-insensitive) it contains any of `any_of`
    (or `any_of` is empty), all of `all_of`, and none of `none_of`.
    """
    name: str
    any_of: Tuple[str, ...] = ()
    all_of: Tuple[str, ...] = ()
    none_of: Tuple[str, ...] = ()

    def matches(self, phrase: str) -> bool:
        text = phrase.lower()
        if self.any_of and not any(token in text for token in self.any_of):
            return False
        if not all(token in text for token in self.all_of):
            return False
        return not any(token in text for token in self.none_of)


# Order matters: more specific rules come before the generic ones they overlap
# with ("Dishwasher" before "Washer", "Hair_dryer" before "Dryer").
CONSOLIDATION_RULES: List[AmenityRule] = [
    AmenityRule('Free_parking', all_of=('free', 'parking')),
    AmenityRule('Paid_parking', all_of=('paid', 'parking')),
    AmenityRule('Refrigerator', any_of=('refrigerator', 'fridge')),
    AmenityRule('Dishwasher', any_of=('dishwasher',)),
    AmenityRule('Washer', any_of=('washer', 'washing machine')),
    AmenityRule('Hair_dryer', any_of=('hair dryer', 'hairdryer')),
    AmenityRule('Dryer', any_of=('dryer',)),
    AmenityRule('Wifi', any_of=('wifi', 'wi-fi', 'wireless internet')),
    AmenityRule('TV', any_of=('tv',)),
    AmenityRule('Sound_system', any_of=('sound system', 'speaker')),
    AmenityRule('Stove', any_of=('stove',)),
    AmenityRule('Oven', any_of=('oven',)),
    AmenityRule('Coffee_maker', any_of=('coffee',)),
    AmenityRule('Shampoo', any_of=('shampoo',)),
    AmenityRule('Conditioner', any_of=('conditioner',)),
    AmenityRule('Body_soap', any_of=('body soap', 'shower gel')),
    # 'ac - ' matches "AC - split type ductless system"; a bare 'ac' would hit "Pack", "Beach"
    AmenityRule('Air_conditioning', any_of=('air conditioning', 'ac - ')),
    AmenityRule('Heating', any_of=('heating', 'heater'), none_of=('water',)),
    AmenityRule('Pool', any_of=('pool',), none_of=('table',)),
    AmenityRule('Hot_tub', any_of=('hot tub', 'jacuzzi')),
    AmenityRule('Gym', any_of=('gym', 'exercise equipment')),
    AmenityRule('Patio_or_balcony', any_of=('patio', 'balcony')),
    AmenityRule('Backyard', any_of=('backyard', 'garden')),
    AmenityRule('Children_books_and_toys', any_of=("children's books", "children\u2019s books", 'toys')),
    AmenityRule('Game_console', any_of=('game console', 'playstation', 'xbox', 'nintendo')),
    AmenityRule('EV_charger', any_of=('ev charger',)),
]


# =============================================================================
# PARSING
# =============================================================================

def parse_amenities(text) -> List[str]:
    """
    Split a raw amenities field into its phrases.

    '["Wifi", "Siemens refrigerator"]' -> ['Wifi', 'Siemens refrigerator']

    Falls back to quoted-entry extraction when the field is not valid JSON.
    """
    if text is None or (isinstance(text, float) and text != text):
        return []
    raw = str(text).strip()
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        items = [str(item) for item in parsed]
    else:
        items = QUOTED_ENTRY.findall(raw)
        if not items:
            items = raw.strip('[]{}').split(',')
    phrases = []
    for item in items:
        phrase = re.sub(r'\s+', ' ', item).strip().strip('"\'')
        if phrase:
            phrases.append(phrase)
    return phrases


def sanitize_column_name(phrase: str) -> str:
    """'Siemens refrigerator' -> 'Siemens_refrigerator'."""
    return NON_ALNUM.sub('_', phrase).strip('_') or 'amenity'


def _decoded_text(value) -> str:
    """Decoded phrases of one amenities field, one per line."""
    return '\n'.join(parse_amenities(value))


# =============================================================================
# VECTORIZER
# =============================================================================

class AmenityVectorizer:
    """
    Expands amenities text into a fixed-width boolean frame.

    Usage:
        vectorizer = AmenityVectorizer()
        flags = vectorizer.fit_transform(listings['amenities'])
        new_flags = vectorizer.transform(new_listings['amenities'])
        assert list(new_flags.columns) == vectorizer.columns_
    """

    def __init__(
        self,
        rules: Optional[Sequence[AmenityRule]] = None,
        min_listings: int = 1,
        reserved_names: Iterable[str] = ()
    ):
        """
        Args:
            rules: Consolidation table (default CONSOLIDATION_RULES)
            min_listings: Phrases listed by fewer listings are left out
            reserved_names: Column names already used by the listing schema;
                colliding amenity columns get an '_amenity' suffix
        """
        self.rules = list(CONSOLIDATION_RULES if rules is None else rules)
        self.min_listings = min_listings
        self.reserved_names = set(reserved_names)

        self.vocabulary_: Optional[List[str]] = None
        self.columns_: Optional[List[str]] = None
        self.canonical_columns_: Optional[List[str]] = None
        self.sources_: Optional[Dict[str, List[str]]] = None
        self.claimed_: Optional[Dict[str, str]] = None

    @property
    def is_fitted(self) -> bool:
        return self.columns_ is not None

    def _claim(self, phrase: str) -> Optional[str]:
        for rule in self.rules:
            if rule.matches(phrase):
                return rule.name
        return None

    def _column_name(self, name: str) -> str:
        return f"{name}_amenity" if name in self.reserved_names else name

    def fit(self, amenities: Iterable) -> 'AmenityVectorizer':
        """
        Fix the vocabulary from a corpus of amenities fields.

        Args:
            amenities: One raw amenities field per listing

        Returns:
            self
        """
        counts: Dict[str, int] = {}
        for text in amenities:
            for phrase in set(parse_amenities(text)):
                counts[phrase] = counts.get(phrase, 0) + 1

        self.vocabulary_ = sorted(p for p, n in counts.items() if n >= self.min_listings)

        canonical: Dict[str, List[str]] = {}
        raw: Dict[str, List[str]] = {}
        self.claimed_ = {}
        for phrase in self.vocabulary_:
            rule_name = self._claim(phrase)
            if rule_name is not None:
                canonical.setdefault(self._column_name(rule_name), []).append(phrase)
                self.claimed_[phrase] = rule_name
            else:
                raw.setdefault(self._column_name(sanitize_column_name(phrase)), []).append(phrase)

        # A sanitized phrase that collides with a canonical name is merged into it
        for name in list(raw):
            if name in canonical:
                canonical[name].extend(raw.pop(name))

        self.sources_ = {**canonical, **raw}
        self.canonical_columns_ = sorted(canonical)
        self.columns_ = sorted(canonical) + sorted(raw)

        logger.info(
            f"Amenity vocabulary: {len(self.vocabulary_):,} phrases -> "
            f"{len(canonical)} canonical + {len(raw)} raw columns"
        )
        return self

    def transform(self, amenities: Iterable) -> pd.DataFrame:
        """
        Expand amenities fields against the fitted vocabulary.

        A raw phrase is present when it occurs as a substring of the listing's
        decoded amenity phrases ("TV" also lights on "HDTV"). Phrases outside the
        vocabulary are ignored.

        Returns:
            Boolean DataFrame with exactly `columns_`
        """
        if not self.is_fitted:
            raise NotFittedError("AmenityVectorizer not fitted. Call fit() first.")

        index = amenities.index if isinstance(amenities, pd.Series) else None
        texts = [_decoded_text(t) for t in amenities]

        raw_flags = {
            phrase: [phrase in text for text in texts]
            for phrase in self.vocabulary_
        }
        columns = {}
        for name in self.columns_:
            flags = [False] * len(texts)
            for phrase in self.sources_[name]:
                flags = [a or b for a, b in zip(flags, raw_flags[phrase])]
            columns[name] = flags

        return pd.DataFrame(columns, index=index, columns=self.columns_, dtype=bool)

    def fit_transform(self, amenities) -> pd.DataFrame:
        amenities = list(amenities) if not isinstance(amenities, pd.Series) else amenities
        return self.fit(amenities).transform(amenities)

    def consolidation_report(self) -> pd.DataFrame:
        """Which raw phrases were folded into which canonical flag."""
        if not self.is_fitted:
            raise NotFittedError("AmenityVectorizer not fitted. Call fit() first.")
        return pd.DataFrame(
            sorted(self.claimed_.items(), key=lambda kv: (kv[1], kv[0])),
            columns=['phrase', 'canonical'],
        )
