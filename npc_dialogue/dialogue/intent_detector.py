# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Coarse intent classification for free-text player messages.

No regular expressions. Input is cut to MAX_INTENT_INPUT characters,
split into tokens by a single pass over the characters, and cut again to
MAX_INTENT_TOKENS tokens. Every rule is then a set or prefix lookup:

  leading   - the message starts with this token sequence
  phrases   - this token sequence appears anywhere (n-gram set lookup)
  keywords  - single tokens; confidence = min(base, 0.5 + 0.12 * hits)

Work is linear in the (capped) input length, so adversarial strings such
as 100k repeated characters classify in bounded time.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from npc_dialogue.config import MAX_INTENT_INPUT, MAX_INTENT_TOKENS
from npc_dialogue.models.templates import TemplatePool

_MAX_PHRASE_LEN = 4
_NPC_REFERENCE_BONUS = 0.1
_QUESTION_MARK_CONFIDENCE = 0.6


class Intent(enum.Enum):
    GREETING = "greeting"
    FAREWELL = "farewell"
    QUESTION = "question"
    TRADE = "trade"
    CHALLENGE = "challenge"
    COMPLIMENT = "compliment"
    INSULT = "insult"
    GOSSIP = "gossip"
    LORE = "lore"
    HELP = "help"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class IntentMatch:
    """Classification result.

    Attributes:
        intent: Detected intent.
        confidence: 0-1.
        matched: What matched, for debugging ("phrase: tell me about").
        target_npc: Slug of an NPC the message mentions, if any.
    """

    intent: Intent
    confidence: float
    matched: str = ""
    target_npc: str | None = None


@dataclass(frozen=True)
class _Rule:
    intent: Intent
    base_confidence: float
    leading: tuple[tuple[str, ...], ...] = ()
    phrases: tuple[tuple[str, ...], ...] = ()
    keywords: frozenset[str] = frozenset()


def _seqs(*texts: str) -> tuple[tuple[str, ...], ...]:
    return tuple(tuple(t.split()) for t in texts)


_RULES: tuple[_Rule, ...] = (
    _Rule(
        Intent.GREETING,
        0.9,
        leading=_seqs(
            "hi", "hello", "hey", "greetings", "yo", "sup", "howdy", "hiya",
            "whats up", "what's up", "good morning", "good afternoon",
            "good evening", "good day", "well met",
        ),
        keywords=frozenset({"hi", "hello", "hey", "greetings", "howdy"}),
    ),
    _Rule(
        Intent.FAREWELL,
        0.9,
        leading=_seqs("bye", "goodbye", "later", "see ya", "cya", "farewell", "gtg", "gotta go"),
        phrases=_seqs("leaving now", "heading out", "gotta run", "see you later"),
        keywords=frozenset({"bye", "goodbye", "farewell", "cya"}),
    ),
    _Rule(
        Intent.TRADE,
        0.85,
        phrases=_seqs(
            "what do you sell", "what can you offer", "show me your wares",
            "for sale", "how much", "buy", "sell", "trade", "purchase",
        ),
        keywords=frozenset({"buy", "sell", "shop", "wares", "items", "price", "stock", "trade", "gold", "deal"}),
    ),
    _Rule(
        Intent.CHALLENGE,
        0.85,
        phrases=_seqs("fight me", "lets fight", "let's fight", "you and me", "bring it", "duel", "1v1"),
        keywords=frozenset({"fight", "duel", "battle", "challenge", "spar"}),
    ),
    _Rule(
        Intent.INSULT,
        0.8,
        phrases=_seqs("you suck", "shut up", "you're useless", "youre useless", "get lost", "you stink"),
        keywords=frozenset({"idiot", "fool", "stupid", "coward", "pathetic", "ugly", "useless", "moron", "loser"}),
    ),
    _Rule(
        Intent.LORE,
        0.8,
        leading=_seqs("explain", "why"),
        phrases=_seqs(
            "tell me about", "tell me more", "who is", "who are", "who was",
            "what happened", "what is the", "history of", "story of",
        ),
        keywords=frozenset({"history", "story", "lore", "origin", "legend", "ancient", "gods", "explain"}),
    ),
    _Rule(
        Intent.COMPLIMENT,
        0.75,
        phrases=_seqs("thank you", "well done", "good job", "you're great", "youre great", "nice work", "i like you"),
        keywords=frozenset({"thanks", "great", "amazing", "awesome", "wonderful", "brilliant", "wise", "beautiful"}),
    ),
    _Rule(
        Intent.GOSSIP,
        0.75,
        phrases=_seqs("have you heard", "did you hear", "what do you think of", "what about", "rumor has it"),
        keywords=frozenset({"rumor", "rumors", "gossip", "heard", "secret", "whisper", "news"}),
    ),
    _Rule(
        Intent.HELP,
        0.75,
        phrases=_seqs(
            "help me", "can you help", "where is", "where can i", "how do i",
            "how can i", "what should i do", "any tips", "any advice",
        ),
        keywords=frozenset({"help", "tip", "tips", "hint", "advice", "quest", "lost", "stuck"}),
    ),
    _Rule(
        Intent.QUESTION,
        0.7,
        leading=_seqs("what", "who", "where", "when", "why", "how", "is", "are", "do", "does", "can", "will"),
        keywords=frozenset(),
    ),
)

_INTENT_POOLS: dict[Intent, TemplatePool] = {
    Intent.GREETING: TemplatePool.GREETING,
    Intent.FAREWELL: TemplatePool.FAREWELL,
    Intent.TRADE: TemplatePool.SALES_PITCH,
    Intent.QUESTION: TemplatePool.HINT,
    Intent.LORE: TemplatePool.LORE,
    Intent.CHALLENGE: TemplatePool.CHALLENGE,
    Intent.COMPLIMENT: TemplatePool.REACTION,
    Intent.INSULT: TemplatePool.THREAT,
    Intent.GOSSIP: TemplatePool.NPC_GOSSIP,
    Intent.HELP: TemplatePool.HINT,
    Intent.UNKNOWN: TemplatePool.IDLE,
}


def tokenize(text: str) -> tuple[list[str], bool]:
    """Split text into lowercase word tokens in one pass.

    Letters, digits and apostrophes form tokens; everything else
    separates them. Input past MAX_INTENT_INPUT characters and tokens
    past MAX_INTENT_TOKENS are ignored.

    Returns:
        (tokens, ends_with_question_mark)
    """
    text = text[:MAX_INTENT_INPUT]
    tokens: list[str] = []
    current: list[str] = []
    for ch in text:
        if ch.isalnum() or ch == "'":
            current.append(ch.lower())
            continue
        if current:
            tokens.append("".join(current))
            current = []
            if len(tokens) >= MAX_INTENT_TOKENS:
                break
    if current and len(tokens) < MAX_INTENT_TOKENS:
        tokens.append("".join(current))
    return tokens, text.rstrip().endswith("?")


def _ngrams(tokens: list[str]) -> set[tuple[str, ...]]:
    grams: set[tuple[str, ...]] = set()
    for n in range(1, _MAX_PHRASE_LEN + 1):
        for i in range(len(tokens) - n + 1):
            grams.add(tuple(tokens[i : i + n]))
    return grams


def _npc_name_sequences(
    known_npcs: Mapping[str, str] | Iterable[str],
) -> list[tuple[str, tuple[str, ...]]]:
    if isinstance(known_npcs, Mapping):
        items = sorted(known_npcs.items())
    else:
        items = sorted((slug, slug) for slug in known_npcs)
    sequences: list[tuple[str, tuple[str, ...]]] = []
    for slug, name in items:
        for source in (name, slug.replace("-", " ")):
            seq = tuple(tokenize(source)[0][:_MAX_PHRASE_LEN])
            if seq:
                sequences.append((slug, seq))
    return sequences


def detect_npc_reference(
    text: str,
    known_npcs: Mapping[str, str] | Iterable[str],
) -> str | None:
    """Slug of the first known NPC (by slug order) the text mentions.

    Args:
        text: Message text.
        known_npcs: slug -> display name, or bare slugs.
    """
    if not isinstance(text, str):
        return None
    grams = _ngrams(tokenize(text)[0])
    for slug, seq in _npc_name_sequences(known_npcs):
        if seq in grams:
            return slug
    return None


def detect_intent(
    text: object,
    known_npcs: Mapping[str, str] | Iterable[str] = (),
) -> IntentMatch:
    """Classify a message. Never raises; anything odd is UNKNOWN.

    Args:
        text: Raw player text.
        known_npcs: NPCs whose mention boosts gossip/question confidence.

    Returns:
        Best match across all rules.
    """
    if not isinstance(text, str) or len(text.strip()) < 2:
        return IntentMatch(Intent.UNKNOWN, 0.0)

    tokens, question_mark = tokenize(text)
    if not tokens:
        return IntentMatch(Intent.UNKNOWN, 0.0)
    grams = _ngrams(tokens)
    token_set = set(tokens)

    best = IntentMatch(Intent.UNKNOWN, 0.0)
    for rule in _RULES:
        for seq in rule.leading:
            if tuple(tokens[: len(seq)]) == seq and rule.base_confidence > best.confidence:
                best = IntentMatch(rule.intent, rule.base_confidence, "leading: " + " ".join(seq))
        for seq in rule.phrases:
            if seq in grams and rule.base_confidence > best.confidence:
                best = IntentMatch(rule.intent, rule.base_confidence, "phrase: " + " ".join(seq))
        hits = sorted(token_set & rule.keywords)
        if hits:
            confidence = min(rule.base_confidence, 0.5 + 0.12 * len(hits))
            if confidence > best.confidence:
                best = IntentMatch(rule.intent, confidence, "keywords: " + ", ".join(hits))

    if question_mark and best.confidence < _QUESTION_MARK_CONFIDENCE:
        best = IntentMatch(Intent.QUESTION, _QUESTION_MARK_CONFIDENCE, "question mark")

    target = detect_npc_reference(text, known_npcs) if known_npcs else None
    if target is not None:
        confidence = best.confidence
        if best.intent in (Intent.GOSSIP, Intent.QUESTION):
            confidence = min(1.0, confidence + _NPC_REFERENCE_BONUS)
        best = IntentMatch(best.intent, confidence, best.matched, target)
    return best


def intent_to_pool(intent: Intent, npc_target: bool = False) -> TemplatePool:
    """Template pool for an intent.

    When the speaker is addressing another NPC rather than the player,
    only greeting and gossip keep their own NPC pools; everything else
    becomes a generic NPC reaction.
    """
    if npc_target:
        if intent is Intent.GREETING:
            return TemplatePool.NPC_GREETING
        if intent is Intent.GOSSIP:
            return TemplatePool.NPC_GOSSIP
        return TemplatePool.NPC_REACTION
    return _INTENT_POOLS[intent]
