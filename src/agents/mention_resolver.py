"""Extracts @mentions from a user message and maps them to dispatch targets."""

import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from constants import MENTION_MAX_WORDS, MENTION_ME_ALIAS
from models.catalog import AppRef, ModelCatalog, ModelSpec
from models.targets import Mention, ResolvedMentions, Target

# An @ that does not continue a word, URL, e-mail or path
_MENTION_START = re.compile(r"(?<![\w.\-:])@")
_WORD = re.compile(r"[a-zA-Z0-9.\-:]+")


class MentionCatalog:
    """A snapshot of everything a message may mention, taken before resolution starts."""

    def __init__(self, models: ModelCatalog, apps: Optional[Dict[str, AppRef]] = None, own_app: Optional[AppRef] = None):
        self.models = models
        self.apps = {key.lower(): app for key, app in (apps or {}).items()}
        self.own_app = own_app

    def model(self, token: str) -> Optional[ModelSpec]:
        return self.models.get(token)

    def app(self, token: str) -> Optional[AppRef]:
        return self.apps.get(token.lower())


class MentionResolver:
    """Resolves @tokens against a catalog snapshot.

    Tokens may span several space-separated words (persona names such as "@Elon Musk");
    the longest candidate that matches the catalog wins. Lookups are case-insensitive and
    try models before apps. A mention must be followed by whitespace or the end of the text.
    """

    def __init__(self, max_words: int = MENTION_MAX_WORDS):
        self.max_words = max_words

    def candidates(self, text: str) -> List[str]:
        """Every token a message could be mentioning, for prefetching app lookups."""
        seen: Set[str] = set()
        tokens = []
        for _, spans in self._scan(text):
            for _, token in spans:
                for candidate in (token, token.rstrip(".:-")):
                    key = candidate.lower()
                    if candidate and key not in seen:
                        seen.add(key)
                        tokens.append(candidate)
        return tokens

    def resolve(self, text: str, catalog: MentionCatalog) -> ResolvedMentions:
        mentions: List[Mention] = []
        targets: List[Target] = []
        seen_targets: Set[str] = set()
        removed: List[Tuple[int, int]] = []
        consumed_until = 0

        for start, spans in self._scan(text):
            if start < consumed_until:
                continue

            match = self._match(spans, catalog)
            if match is None:
                # Unresolved tokens stay in the text as written
                first_end, first_token = spans[0]
                mentions.append(Mention(raw=first_token, start=start, end=first_end))
                continue

            end, token, target = match
            mentions.append(Mention(raw=token, start=start, end=end, target=target))
            removed.append((start, end))
            consumed_until = end
            if target.id not in seen_targets:
                seen_targets.add(target.id)
                targets.append(target)

        if not removed:
            return ResolvedMentions(cleaned_text=text, targets=targets, mentions=mentions)
        return ResolvedMentions(cleaned_text=self._strip(text, removed), targets=targets, mentions=mentions)

    def _match(self, spans: List[Tuple[int, str]], catalog: MentionCatalog) -> Optional[Tuple[int, str, Target]]:
        first_end, first_token = spans[0]
        if first_token.lower() == MENTION_ME_ALIAS and catalog.own_app is not None:
            return first_end, first_token, Target.for_app(catalog.own_app)

        for end, token in reversed(spans):
            # "@gpt-4o." closing a sentence still names gpt-4o; the dot stays in the text
            for candidate in dict.fromkeys((token, token.rstrip(".:-"))):
                if not candidate:
                    continue
                candidate_end = end - (len(token) - len(candidate))
                model = catalog.model(candidate)
                if model is not None:
                    return candidate_end, candidate, Target.for_model(model)
                app = catalog.app(candidate)
                if app is not None:
                    return candidate_end, candidate, Target.for_app(app)
        return None

    def _scan(self, text: str) -> Iterable[Tuple[int, List[Tuple[int, str]]]]:
        """Yield (position of @, [(end, token), ...]) with candidates ordered shortest first."""
        for found in _MENTION_START.finditer(text):
            start = found.start()
            spans = self._spans(text, found.end())
            if spans:
                yield start, spans

    def _spans(self, text: str, position: int) -> List[Tuple[int, str]]:
        spans: List[Tuple[int, str]] = []
        cursor = position
        while len(spans) < self.max_words:
            word = _WORD.match(text, cursor)
            if word is None:
                break
            end = word.end()
            # Candidates must end at whitespace or end of text
            if end < len(text) and not text[end].isspace():
                break
            spans.append((end, text[position:end]))
            if end + 1 >= len(text) or text[end] != " ":
                break
            cursor = end + 1
        return spans

    @staticmethod
    def _strip(text: str, removed: List[Tuple[int, int]]) -> str:
        """Cut each mention and one adjacent space; the rest of the text is kept as written."""
        parts = []
        cursor = 0
        for start, end in removed:
            if end < len(text) and text[end] == " ":
                end += 1
            elif start > cursor and text[start - 1] == " ":
                start -= 1
            parts.append(text[cursor:start])
            cursor = end
        parts.append(text[cursor:])
        return "".join(parts)
