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

"""Conversation topic and thread records."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from npc_dialogue.config import INITIAL_MOMENTUM


class TopicCategory(enum.Enum):
    GREETING = "greeting"
    BUSINESS = "business"
    PERSONAL = "personal"
    LORE = "lore"
    THREAT = "threat"
    ALLIANCE = "alliance"
    GOSSIP = "gossip"
    PHILOSOPHY = "philosophy"
    PRACTICAL = "practical"
    HUMOR = "humor"
    EMOTIONAL = "emotional"
    GAME_META = "game_meta"


@dataclass(frozen=True)
class Topic:
    """One subject under discussion.

    Attributes:
        topic_id: Unique within a thread.
        category: Topic family.
        subject: Short subject tag, e.g. "the-old-war".
        initiator: NPC that raised it.
        participants: NPCs that have spoken on it.
        depth: 0-10, grows each time the topic is advanced.
        exhaustion: 0-1, grows with depth; exhausted topics get dropped.
        last_mentioned: Thread turn of the last contribution.
    """

    topic_id: str
    category: TopicCategory
    subject: str
    initiator: str
    participants: frozenset[str] = frozenset()
    depth: int = 0
    exhaustion: float = 0.0
    last_mentioned: int = 0


@dataclass(frozen=True)
class ConversationThread:
    """State of an ongoing conversation.

    Attributes:
        thread_id: Stable id for the conversation.
        participants: NPCs in the conversation.
        topics: Topic history, oldest first, bounded.
        active_topic: topic_id of the current topic, if any.
        turn_count: Turns taken so far.
        momentum: 0-1, low momentum means the talk is dying out.
        tension: 0-1, how heated the exchange is.
        affinity: Per-participant topic-category preferences.
    """

    thread_id: str
    participants: tuple[str, ...] = ()
    topics: tuple[Topic, ...] = ()
    active_topic: str | None = None
    turn_count: int = 0
    momentum: float = INITIAL_MOMENTUM
    tension: float = 0.0
    affinity: tuple[tuple[str, tuple[tuple[TopicCategory, float], ...]], ...] = field(
        default=()
    )

    def get_active_topic(self) -> Topic | None:
        for topic in self.topics:
            if topic.topic_id == self.active_topic:
                return topic
        return None

    def affinity_for(self, npc_id: str) -> dict[TopicCategory, float]:
        for owner, prefs in self.affinity:
            if owner == npc_id:
                return dict(prefs)
        return {}
