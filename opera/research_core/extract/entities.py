from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from typing import Any, Iterable

import spacy
from loguru import logger
from sklearn.feature_extraction.text import TfidfVectorizer

from opera.config import Settings, settings as default_settings

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "were", "be",
        "been", "being", "have", "has", "had", "do", "does", "did", "will",
        "would", "should", "could", "may", "might", "must", "can", "this",
        "that", "these", "those", "i", "you", "he", "she", "it", "we", "they",
        "him", "her", "his", "hers", "its", "our", "their", "who", "what",
        "where", "when", "why", "how", "which", "whom", "whose", "there",
        "then", "than", "more", "most", "other", "some", "many", "much",
        "also", "into", "about", "after", "before", "over", "under", "not",
        "all", "any", "each", "such", "only", "just", "said", "says",
    }
)

# Title-case phrases that are places, not organizations
ORG_FALSE_POSITIVES = frozenset(
    {
        "united states",
        "new york",
        "los angeles",
        "san francisco",
        "washington dc",
        "washington d c",
        "new jersey",
        "new mexico",
        "new hampshire",
        "united kingdom",
        "great britain",
        "united kingdom of great britain",
        "european union",
        "asia pacific",
        "middle east",
        "north america",
        "south america",
        "latin america",
    }
)

# Leading words stripped from a Title-Case run ("The Acme Group" -> "Acme Group")
LEADING_NOISE = frozenset(
    {"the", "a", "an", "in", "on", "at", "by", "for", "from", "and", "but", "of", "to", "with", "as"}
)

_NAME_WORD = r"[A-Z][\w&'.-]*"

COMPANY_PATTERN = re.compile(
    rf"\b((?:{_NAME_WORD}[ \t]+){{1,4}}"
    r"(?:Inc|Corp|Corporation|LLC|Ltd|Co|Company|Group|Holdings)\b\.?)"
)

AGENCY_PATTERN = re.compile(
    rf"\b((?:{_NAME_WORD}[ \t]+){{1,4}}"
    r"(?:Agency|Department|Bureau|Administration|Office|Foundation|Institute|"
    r"University|College|Commission|Council|Ministry))\b"
)

INSTITUTION_OF_PATTERN = re.compile(
    r"\b((?:University|Department|Ministry|Bureau|Institute|Office|Commission) of"
    rf"(?:[ \t]+(?:the[ \t]+)?{_NAME_WORD}){{1,4}})"
)

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
URL_PATTERN = re.compile(r"https?://[^\s<>\"')\]]+")

TITLE_WORD = re.compile(r"^[A-Z][a-z]+$")

PERSON_LABELS = {"PERSON"}
PLACE_LABELS = {"GPE", "LOC", "FAC"}
ORG_LABELS = {"ORG"}
DATE_LABELS = {"DATE"}

MAX_DATES = 20
MAX_KEYWORDS = 20


@lru_cache(maxsize=4)
def load_nlp(model_name: str):
    """Load a spaCy pipeline, falling back to a blank English sentencizer."""
    try:
        nlp = spacy.load(model_name)
        logger.info(f"Loaded spaCy model: {model_name}")
    except OSError:
        logger.warning(
            f"spaCy model '{model_name}' not found, named-entity recognition disabled"
        )
        nlp = spacy.blank("en")
        nlp.add_pipe("sentencizer")
    return nlp


@dataclass(slots=True)
class ExtractedEntities:
    people: list[str] = field(default_factory=list)
    places: list[str] = field(default_factory=list)
    organizations: list[str] = field(default_factory=list)
    dates: list[str] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def dedupe_preserving_order(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        value = " ".join(value.split())
        key = value.lower()
        if not value or key in seen:
            continue
        seen.add(key)
        result.append(value)
    return result


def normalize_entity(name: str) -> str:
    if not name:
        return ""
    name = re.sub(r"\s+", " ", name.lower().strip())
    return re.sub(r"[^\w\s-]", "", name).strip()


def calculate_similarity(a: str, b: str) -> float:
    """Token-overlap (Jaccard) similarity."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    words_a = set(a.split())
    words_b = set(b.split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def are_entities_same(a: str, b: str, threshold: float = 0.85) -> bool:
    norm_a = normalize_entity(a)
    norm_b = normalize_entity(b)
    if not norm_a or not norm_b:
        return False
    if norm_a == norm_b:
        return True
    if norm_a in norm_b or norm_b in norm_a:
        return True
    return calculate_similarity(norm_a, norm_b) >= threshold


def _strip_leading_noise(words: list[str]) -> list[str]:
    while words and words[0].lower() in LEADING_NOISE:
        words = words[1:]
    return words


def _title_case_runs(sentence: str) -> list[str]:
    """Maximal runs of 2-5 consecutive Title-Case words in a sentence."""
    runs: list[str] = []
    current: list[str] = []
    for token in sentence.split():
        word = token.strip("\"'()[]")
        bare = word.rstrip(",;:!?.")
        if bare and TITLE_WORD.match(bare):
            current.append(bare)
            if bare == word:
                continue
        # a non-title word or trailing punctuation closes the phrase
        if current:
            runs.append(" ".join(current))
            current = []
    if current:
        runs.append(" ".join(current))
    cleaned: list[str] = []
    for run in runs:
        words = _strip_leading_noise(run.split())
        if 2 <= len(words) <= 5:
            cleaned.append(" ".join(words))
    return cleaned


def is_common_false_positive(phrase: str) -> bool:
    return phrase.lower().strip() in ORG_FALSE_POSITIVES


def extract_organizations(
    text: str,
    doc: Any = None,
    *,
    exclude: Iterable[str] = (),
) -> list[str]:
    """Organizations from corporate/agency suffixes, NER and Title-Case phrases."""
    orgs: list[str] = []
    for pattern in (COMPANY_PATTERN, AGENCY_PATTERN, INSTITUTION_OF_PATTERN):
        for match in pattern.finditer(text):
            words = _strip_leading_noise(match.group(1).split())
            if words:
                orgs.append(" ".join(words))

    if doc is not None:
        orgs.extend(ent.text for ent in doc.ents if ent.label_ in ORG_LABELS)
        sentences = [sent.text for sent in doc.sents]
    else:
        sentences = re.split(r"(?<=[.!?])\s+", text)

    excluded = {e.lower() for e in exclude}
    for sentence in sentences:
        for phrase in _title_case_runs(sentence):
            if is_common_false_positive(phrase) or phrase.lower() in excluded:
                continue
            orgs.append(phrase)

    return [o for o in dedupe_preserving_order(orgs) if not is_common_false_positive(o)]


def tokenize_keywords(text: str) -> list[str]:
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    return [w for w in words if len(w) >= 3 and w not in STOP_WORDS]


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Top terms by TF-IDF against the single document."""
    tokens = tokenize_keywords(text)
    if not tokens:
        return []
    vectorizer = TfidfVectorizer(analyzer=tokenize_keywords)
    matrix = vectorizer.fit_transform([text])
    scores = dict(zip(vectorizer.get_feature_names_out(), matrix.toarray()[0]))
    # Stable sort keeps first-seen order among equal scores
    ranked = sorted(dict.fromkeys(tokens), key=lambda term: -scores.get(term, 0.0))
    return [term for term in ranked if scores.get(term, 0.0) > 0][:limit]


def extract_emails(text: str) -> list[str]:
    return dedupe_preserving_order(EMAIL_PATTERN.findall(text))


def extract_urls(text: str) -> list[str]:
    return dedupe_preserving_order(u.rstrip(".,;:") for u in URL_PATTERN.findall(text))


class EntityExtractor:
    """Pulls people, places, organizations, dates, emails, URLs and keywords out of text.

    ``nlp`` is any callable returning a spaCy-like ``Doc`` (``.ents`` with
    ``text``/``label_`` and ``.sents`` with ``text``). When omitted, the model
    named by ``spacy_model`` is loaded on first use.
    """

    def __init__(self, nlp: Any = None, config: Settings | None = None):
        self.config = config or default_settings
        self._nlp = nlp

    @property
    def nlp(self):
        if self._nlp is None:
            self._nlp = load_nlp(self.config.spacy_model)
        return self._nlp

    def parse(self, text: str):
        try:
            return self.nlp(text)
        except ValueError as e:
            logger.error(f"NLP parsing failed: {e}")
            return None

    def extract_from_text(self, text: str, source_url: str | None = None) -> ExtractedEntities:
        if not text or not text.strip():
            return ExtractedEntities()

        doc = self.parse(text)
        people: list[str] = []
        places: list[str] = []
        dates: list[str] = []
        if doc is not None:
            for ent in doc.ents:
                value = ent.text.strip()
                if len(value) <= 1:
                    continue
                if ent.label_ in PERSON_LABELS:
                    people.append(value)
                elif ent.label_ in PLACE_LABELS:
                    places.append(value)
                elif ent.label_ in DATE_LABELS:
                    dates.append(value)

        people = dedupe_preserving_order(people)
        places = dedupe_preserving_order(places)
        result = ExtractedEntities(
            people=people,
            places=places,
            organizations=extract_organizations(text, doc, exclude=people + places),
            dates=dedupe_preserving_order(dates)[:MAX_DATES],
            emails=extract_emails(text),
            urls=extract_urls(text),
            keywords=extract_keywords(text, limit=self.config.max_keywords_per_page),
        )
        logger.info(
            f"Entity extraction completed for {source_url or 'text'}: "
            f"people={len(result.people)} places={len(result.places)} "
            f"orgs={len(result.organizations)} dates={len(result.dates)}"
        )
        return result
