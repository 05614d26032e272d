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

"""Conversation threading - topic continuity across turns.

Each contribution either deepens the active topic (same category) or
opens a new one. Deepening raises depth by 1 and exhaustion by
TOPIC_EXHAUSTION_STEP; an exhausted topic is one the participants are
tired of and search/selection steer away from it.
"""

from __future__ import annotations

from dataclasses import replace

import numpy as np

from npc_dialogue.config import MAX_TOPIC_DEPTH, MAX_TOPIC_HISTORY, TOPIC_EXHAUSTION_STEP
from npc_dialogue.core.rng import SeededRng
from npc_dialogue.models.npc import NPCCategory
from npc_dialogue.models.templates import TemplatePool
from npc_dialogue.models.topic import ConversationThread, Topic, TopicCategory

T = TopicCategory

_PREFERRED = 1.5
_AVOIDED = 0.3
_EXPERTISE = 2.0

# (preferred, avoided, expertise)
_AFFINITY_PROFILES: dict[NPCCategory, tuple[tuple[T, ...], tuple[T, ...], tuple[T, ...]]] = {
    NPCCategory.PANTHEON: (
        (T.LORE, T.THREAT, T.GAME_META, T.PHILOSOPHY),
        (T.ALLIANCE, T.PERSONAL),
        (T.LORE, T.GAME_META),
    ),
    NPCCategory.WANDERERS: (
        (T.BUSINESS, T.GOSSIP, T.PRACTICAL, T.HUMOR),
        (T.THREAT, T.EMOTIONAL),
        (T.BUSINESS, T.PRACTICAL),
    ),
    NPCCategory.TRAVELERS: (
        (T.ALLIANCE, T.PRACTICAL, T.PERSONAL, T.GOSSIP),
        (T.LORE, T.PHILOSOPHY),
        (T.PRACTICAL, T.ALLIANCE),
    ),
    NPCCategory.SHOP: (
        (T.BUSINESS, T.GOSSIP, T.HUMOR),
        (T.THREAT, T.PHILOSOPHY),
        (T.BUSINESS,),
    ),
}


def _build_affinities() -> dict[NPCCategory, dict[TopicCategory, float]]:
    table: dict[NPCCategory, dict[TopicCategory, float]] = {}
    for category, (preferred, avoided, expertise) in _AFFINITY_PROFILES.items():
        weights = {topic: 1.0 for topic in TopicCategory}
        for topic in preferred:
            weights[topic] = _PREFERRED
        for topic in avoided:
            weights[topic] = _AVOIDED
        for topic in expertise:
            weights[topic] = _EXPERTISE
        table[category] = weights
    return table


TOPIC_AFFINITIES = _build_affinities()

POOL_TOPICS: dict[TemplatePool, TopicCategory] = {
    TemplatePool.GREETING: T.GREETING,
    TemplatePool.NPC_GREETING: T.GREETING,
    TemplatePool.FAREWELL: T.GREETING,
    TemplatePool.SALES_PITCH: T.BUSINESS,
    TemplatePool.BARGAIN: T.BUSINESS,
    TemplatePool.THREAT: T.THREAT,
    TemplatePool.CHALLENGE: T.THREAT,
    TemplatePool.NPC_CONFLICT: T.THREAT,
    TemplatePool.LORE: T.LORE,
    TemplatePool.NPC_LORE: T.LORE,
    TemplatePool.HINT: T.PRACTICAL,
    TemplatePool.NPC_GOSSIP: T.GOSSIP,
    TemplatePool.NPC_ALLIANCE: T.ALLIANCE,
    TemplatePool.REACTION: T.PERSONAL,
    TemplatePool.NPC_REACTION: T.PERSONAL,
    TemplatePool.IDLE: T.HUMOR,
    TemplatePool.PLAYER_INTERRUPT: T.GAME_META,
}


def start_thread(
    thread_id: str,
    participants: list[tuple[str, NPCCategory]],
) -> ConversationThread:
    """Open an empty thread with per-participant topic affinities."""
    affinity = tuple(
        (slug, tuple(sorted(TOPIC_AFFINITIES[category].items(), key=lambda kv: kv[0].value)))
        for slug, category in participants
    )
    return ConversationThread(
        thread_id=thread_id,
        participants=tuple(slug for slug, _ in participants),
        affinity=affinity,
    )


def start_topic(
    thread: ConversationThread,
    category: TopicCategory,
    initiator: str,
    subject: str | None = None,
) -> ConversationThread:
    """Append a new topic and make it active. Oldest topics fall off."""
    topic = Topic(
        topic_id=f"{thread.thread_id}:{thread.turn_count}:{category.value}",
        category=category,
        subject=subject or category.value,
        initiator=initiator,
        participants=frozenset({initiator}),
        last_mentioned=thread.turn_count,
    )
    topics = (thread.topics + (topic,))[-MAX_TOPIC_HISTORY:]
    return replace(thread, topics=topics, active_topic=topic.topic_id)


def _replace_topic(thread: ConversationThread, topic: Topic) -> ConversationThread:
    topics = tuple(topic if t.topic_id == topic.topic_id else t for t in thread.topics)
    return replace(thread, topics=topics)


def contribute(
    thread: ConversationThread,
    speaker: str,
    category: TopicCategory,
    tension_delta: float = 0.0,
    momentum_delta: float = 0.0,
    subject: str | None = None,
) -> ConversationThread:
    """Record one turn of talk on a topic category.

    Deepens the active topic when the category matches, otherwise opens a
    new topic. Tension and momentum are clamped to [0, 1].
    """
    active = thread.get_active_topic()
    if active is None or active.category is not category:
        thread = start_topic(thread, category, speaker, subject)
        active = thread.get_active_topic()
    else:
        active = replace(
            active,
            depth=min(MAX_TOPIC_DEPTH, active.depth + 1),
            exhaustion=float(min(1.0, active.exhaustion + TOPIC_EXHAUSTION_STEP)),
            participants=active.participants | {speaker},
            last_mentioned=thread.turn_count,
        )
        thread = _replace_topic(thread, active)
    participants = thread.participants
    if speaker not in participants:
        participants = participants + (speaker,)
    return replace(
        thread,
        participants=participants,
        turn_count=thread.turn_count + 1,
        tension=float(np.clip(thread.tension + tension_delta, 0.0, 1.0)),
        momentum=float(np.clip(thread.momentum + momentum_delta, 0.0, 1.0)),
    )


def exhausted_topics(thread: ConversationThread, threshold: float = 0.8) -> list[Topic]:
    return [t for t in thread.topics if t.exhaustion >= threshold]


def topic_exhaustion(thread: ConversationThread, category: TopicCategory) -> float:
    """Exhaustion of the most recent topic in a category (0 if never raised)."""
    for topic in reversed(thread.topics):
        if topic.category is category:
            return topic.exhaustion
    return 0.0


def pick_next_topic(
    thread: ConversationThread,
    speaker: str,
    rng: SeededRng,
) -> TopicCategory:
    """Weighted pick by the speaker's affinity and inverse exhaustion."""
    affinity = thread.affinity_for(speaker)
    weighted = [
        (category, affinity.get(category, 1.0) * (1.0 - topic_exhaustion(thread, category)) + 0.01)
        for category in TopicCategory
        if category is not TopicCategory.GAME_META
    ]
    return rng.weighted(weighted, "topic") or TopicCategory.GREETING
