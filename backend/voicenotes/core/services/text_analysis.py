from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod

from pydantic import Field

from voicenotes.core.models.base import AppBaseModel
from voicenotes.utils.logging import get_logger

logger = get_logger(__name__)

_MONTHS = "january|february|march|april|may|june|july|august|september|october|november|december"
DATE_PATTERN = re.compile(
    rf"\b\d{{1,2}}[-/]\d{{1,2}}[-/]\d{{2,4}}\b|\b({_MONTHS})\s+\d{{1,2}}(st|nd|rd|th)?,?\s+\d{{4}}\b",
    re.IGNORECASE,
)
HASHTAG_PATTERN = re.compile(r"#(\w+)")
_TOKEN_SPLIT = re.compile(r"[^a-z0-9_]+")


def tokenize(text: str) -> list[str]:
    """Lower-case word tokens, split on anything that is not a word character."""
    return [t for t in _TOKEN_SPLIT.split(text.lower()) if t]


def find_dates(text: str) -> list[str]:
    return [m.group(0) for m in DATE_PATTERN.finditer(text)]


class TextEntities(AppBaseModel):
    people: list[str] = Field(default_factory=list)
    places: list[str] = Field(default_factory=list)
    money: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list)
    noun_phrases: list[str] = Field(default_factory=list)


class EntityExtractor(ABC):
    """Named-entity and noun-phrase extraction over free text."""

    @abstractmethod
    def analyze(self, text: str) -> TextEntities: ...


class SpacyEntityExtractor(EntityExtractor):
    """spaCy-backed extractor; the pipeline is loaded on first use.

    If the model package is not installed, entity detection is disabled
    (logged once) and only the regex date detection remains.
    """

    PEOPLE_LABELS = frozenset({"PERSON"})
    PLACE_LABELS = frozenset({"GPE", "LOC", "FAC"})
    MONEY_LABELS = frozenset({"MONEY"})

    def __init__(self, model: str = "en_core_web_sm") -> None:
        self._model_name = model
        self._nlp = None
        self._unavailable = False
        self._lock = threading.Lock()

    def _load(self):
        with self._lock:
            if self._nlp is None and not self._unavailable:
                import spacy

                try:
                    self._nlp = spacy.load(self._model_name)
                    logger.info("Loaded spaCy model", extra={"model": self._model_name})
                except OSError as err:
                    self._unavailable = True
                    logger.error(
                        "spaCy model unavailable, entity detection disabled",
                        extra={"model": self._model_name, "error": str(err)},
                    )
        return self._nlp

    def analyze(self, text: str) -> TextEntities:
        entities = TextEntities(dates=find_dates(text))
        nlp = self._load()
        if nlp is None or not text.strip():
            return entities

        doc = nlp(text)
        for ent in doc.ents:
            if ent.label_ in self.PEOPLE_LABELS:
                entities.people.append(ent.text)
            elif ent.label_ in self.PLACE_LABELS:
                entities.places.append(ent.text)
            elif ent.label_ in self.MONEY_LABELS:
                entities.money.append(ent.text)
        entities.noun_phrases = [chunk.text for chunk in doc.noun_chunks]
        return entities
