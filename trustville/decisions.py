"""Conversation heuristics used by agents.

Everything here is total: unknown inputs fall back to neutral pools instead
of raising. Randomness comes from an injected ``random.Random`` (anything
with ``random()`` and ``choice()``), so tests can seed or stub it.

Probabilities are exposed separately (``start_probability``,
``leave_probability``) from the yes/no draws that use them.
"""

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

CAUTIOUS_RESPONSES = [
    "I see... that's interesting.",
    "Hmm, I'm not sure about that.",
    "That's one way to look at it.",
    "I'd need to think about that more.",
    "Maybe... I'm not entirely convinced.",
]
NEUTRAL_RESPONSES = [
    "That's a good point.",
    "I understand what you mean.",
    "Thanks for sharing that.",
    "That makes sense.",
    "I appreciate your perspective.",
]
FRIENDLY_RESPONSES = [
    "That's wonderful! I'm so glad you shared that.",
    "I completely agree! You always have great insights.",
    "That reminds me of something we talked about before.",
    "I love hearing your thoughts on this!",
    "You're absolutely right! I was thinking the same thing.",
]
NORMAL_RESPONSES = [
    "That's really interesting!",
    "I hadn't thought of it that way.",
    "Tell me more about that.",
    "That sounds reasonable.",
    "I can see your point.",
]
ENTHUSIASTIC_PREFIXES = ["Absolutely! ", "Definitely! ", "For sure! ", "Oh yes! "]
SIGN_OFF = " Well, I should get going. Nice talking with you!"

DEFAULT_STARTERS = [
    "Hello! How are you doing?",
    "Hi there! What's on your mind?",
    "Hey! Good to see you!",
    "How's your day going?",
    "What have you been up to lately?",
]

LEAVING_MESSAGES: Dict[str, List[str]] = {
    "goals": [
        "I should get going - I have some things I need to take care of.",
        "It's been great chatting, but I have some tasks to attend to.",
        "I need to head off and handle some business. Talk soon!",
    ],
    "mood": [
        "I'm feeling a bit tired, so I think I'll head off for now.",
        "I need some quiet time to think. Catch you later!",
        "I'm going to take a little break. Nice talking with you!",
    ],
    "time": [
        "Well, I should get going. This has been a lovely conversation!",
        "Time flies when you're having good conversation! I should head off.",
        "I've really enjoyed this chat, but I should move along now.",
    ],
    "boredom": [
        "I think I'll wander around a bit. See you around!",
        "I'm going to explore a little. Take care!",
        "I feel like taking a walk. Nice talking with you!",
    ],
}

POSITIVE_WORDS = ("good", "great", "awesome", "wonderful", "happy", "love", "like", "amazing")
NEGATIVE_WORDS = ("bad", "terrible", "awful", "hate", "sad", "angry", "upset", "worried")
QUESTION_OPENERS = ("what", "how", "why", "when", "where", "who")
TOPIC_KEYWORDS = {
    "weather": ("weather",),
    "work": ("work", "job"),
    "food": ("food", "eat"),
    "relationships": ("friend", "people"),
}


@dataclass(slots=True)
class StartContext:
    """Inputs to the start-conversation heuristic."""

    proximity: float
    shared_history: bool = False
    mood: float = 50.0
    trust_level: float = 50.0
    # Conversations the agent took part in during the trailing hour.
    recent_conversations: int = 0


@dataclass(slots=True)
class LeaveContext:
    """Inputs to the leave-conversation heuristic."""

    conversation_length: int
    last_message_age: float  # seconds since the last message
    participant_count: int = 2
    mood: float = 50.0
    has_goals: bool = False


@dataclass(slots=True)
class ResponseContext:
    conversation_history: List[str] = field(default_factory=list)
    sender_trust_level: float = 50.0
    mood: float = 50.0
    personality: str = ""
    memories: List[str] = field(default_factory=list)


@dataclass(slots=True)
class StarterContext:
    location: str = ""
    time_of_day: str = ""
    shared_memories: List[str] = field(default_factory=list)
    current_events: List[str] = field(default_factory=list)


@dataclass(slots=True)
class MessageAnalysis:
    sentiment: str  # positive | neutral | negative
    is_question: bool
    topics: List[str]
    urgency: int  # 1 (casual) .. 3 (urgent)


@dataclass(slots=True)
class ResponseDecision:
    response: str
    should_continue: bool
    # Small signed integer to feed back into trust bookkeeping.
    emotional_impact: int


def analyze_message(message: str) -> MessageAnalysis:
    lower = message.lower()

    positive = sum(1 for word in POSITIVE_WORDS if word in lower)
    negative = sum(1 for word in NEGATIVE_WORDS if word in lower)
    if positive > negative:
        sentiment = "positive"
    elif negative > positive:
        sentiment = "negative"
    else:
        sentiment = "neutral"

    is_question = "?" in message or lower.startswith(QUESTION_OPENERS)
    topics = [
        topic for topic, keywords in TOPIC_KEYWORDS.items()
        if any(keyword in lower for keyword in keywords)
    ]

    if "urgent" in lower or "important" in lower or "!" in lower:
        urgency = 3
    elif "quick" in lower or "soon" in lower:
        urgency = 2
    else:
        urgency = 1

    return MessageAnalysis(sentiment=sentiment, is_question=is_question, topics=topics, urgency=urgency)


def start_probability(context: StartContext) -> float:
    """Additive probability model for opening a conversation, clamped to [0, 1]."""
    probability = 0.1

    if context.proximity < 2.0:
        probability += 0.3
    elif context.proximity < 5.0:
        probability += 0.1

    if context.shared_history:
        probability += 0.2

    probability += (context.mood - 50) * 0.004        # up to +/-0.2
    probability += (context.trust_level - 50) * 0.003  # up to +/-0.15

    # Anti-spam: busy agents are half as likely to start another one.
    if context.recent_conversations > 3:
        probability *= 0.5

    return max(0.0, min(1.0, probability))


def leave_probability(context: LeaveContext) -> float:
    """Additive probability model for leaving, clamped to [0, 0.8]."""
    chance = 0.1

    if context.conversation_length > 15:
        chance += 0.3
    elif context.conversation_length > 8:
        chance += 0.1

    if context.last_message_age > 5 * 60:
        chance += 0.4
    elif context.last_message_age > 2 * 60:
        chance += 0.2

    if context.participant_count > 3:
        chance += 0.2
    if context.mood < 40:
        chance += 0.2
    if context.has_goals:
        chance += 0.15

    return max(0.0, min(0.8, chance))


class ConversationDecider:
    """Stochastic conversation decisions for one simulation.

    Args:
        rng: Random source; pass ``random.Random(seed)`` for reproducible runs
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def should_start_conversation(self, context: StartContext) -> bool:
        return self.rng.random() < start_probability(context)

    def should_leave_conversation(self, context: LeaveContext) -> bool:
        return self.rng.random() < leave_probability(context)

    def generate_response(self, message: str, context: ResponseContext) -> ResponseDecision:
        """Pick a reply whose tone follows sender trust and the agent's mood.

        Trust buckets: cautious/neutral below 30, friendly above 70, normal otherwise.
        Low mood (<30) shortens the reply and makes continuing unlikely; high mood
        (>70) adds enthusiasm. Past 10 turns the agent tends to wrap up.
        """
        analysis = analyze_message(message)
        should_continue = True

        if context.sender_trust_level < 30:
            pool = CAUTIOUS_RESPONSES if analysis.is_question else NEUTRAL_RESPONSES
            impact = -1
        elif context.sender_trust_level > 70:
            pool = FRIENDLY_RESPONSES
            impact = 2
        else:
            pool = NORMAL_RESPONSES
            impact = 1
        response = self.rng.choice(pool)

        if context.mood < 30:
            response = _shorten(response)
            should_continue = self.rng.random() < 0.3
            impact -= 1
        elif context.mood > 70:
            response = self._add_enthusiasm(response)
            should_continue = self.rng.random() < 0.8
            impact += 1

        if len(context.conversation_history) > 10:
            should_continue = self.rng.random() < 0.4
            if not should_continue:
                response += SIGN_OFF

        return ResponseDecision(response=response, should_continue=should_continue, emotional_impact=impact)

    def generate_conversation_starter(self, context: StarterContext) -> str:
        starters: List[str] = []

        if context.location:
            starters += [
                f"Hey! Nice to see you here at {context.location}.",
                f"What brings you to {context.location} today?",
                f"I love this spot at {context.location}, don't you?",
            ]

        if context.time_of_day == "morning":
            starters += [
                "Good morning! How are you feeling today?",
                "Early bird today, I see!",
                "Beautiful morning, isn't it?",
            ]
        elif context.time_of_day == "evening":
            starters += [
                "Good evening! How was your day?",
                "Lovely evening for a chat!",
                "Winding down for the day?",
            ]

        if context.shared_memories:
            memory = self.rng.choice(context.shared_memories)
            starters += [
                f"Remember when we {memory}? That was fun!",
                f"I was just thinking about {memory}.",
                f"That time we {memory} - good times!",
            ]

        if context.current_events:
            event = self.rng.choice(context.current_events)
            starters += [
                f"Did you hear about {event}?",
                f"What do you think about {event}?",
                f"I've been thinking about {event} lately.",
            ]

        starters += DEFAULT_STARTERS
        return self.rng.choice(starters)

    def generate_leaving_message(self, reason: str) -> str:
        """Polite goodbye for ``reason`` in goals/mood/time/boredom (others use "time")."""
        pool = LEAVING_MESSAGES.get(reason, LEAVING_MESSAGES["time"])
        return self.rng.choice(pool)

    def _add_enthusiasm(self, response: str) -> str:
        if "!" not in response and response.endswith("."):
            response = response[:-1] + "!"
        if self.rng.random() < 0.3:
            response = self.rng.choice(ENTHUSIASTIC_PREFIXES) + response
        return response


def _shorten(response: str) -> str:
    """Keep only the first sentence."""
    sentences = response.split(". ")
    return sentences[0] + ("." if len(sentences) > 1 else "")
