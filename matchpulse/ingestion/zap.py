"""
Bet365 ZAP frame parsing.

A ZAP frame looks like ``\\x14TOPIC\\x01TYPE|KEY=VAL;KEY=VAL;|`` where TYPE is
``F`` (full snapshot), ``U`` (update) or ``D`` (delete).
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

TOPIC_SEPARATOR = "\x01"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f]")
_DATA_BLOCK = re.compile(r"\|([^|]+)\|")

# Data keys that mark a frame as carrying match state
EVENT_KEYS = ("EV", "SC", "GO", "RC", "YC", "PS", "MG")

# EV codes and flag keys
EVENT_CODES = {
    "G": "goal",
    "YC": "yellow_card",
    "RC": "red_card",
}
EVENT_FLAGS = {
    "GO": "goal",
    "YC": "yellow_card",
    "RC": "red_card",
}

FieldValue = Union[str, bool]


@dataclass
class ZapMessage:
    """Result of parsing one frame."""
    kind: str
    raw: str
    topic: Optional[str] = None
    message_type: Optional[str] = None
    data: Dict[str, FieldValue] = field(default_factory=dict)

    @property
    def is_zap(self) -> bool:
        return self.kind == "zap"


class ZapParser:
    """Static helpers for the ZAP wire format."""

    @staticmethod
    def parse(raw: str) -> ZapMessage:
        """
        Split a frame into topic, message type and key/value data.

        Args:
            raw: Frame text

        Returns:
            A ``ZapMessage`` whose ``kind`` is ``zap`` on success, or one of
            ``unknown``, ``connection`` and ``malformed``
        """
        if TOPIC_SEPARATOR not in raw and "|" not in raw:
            return ZapMessage(kind="unknown", raw=raw)

        parts = raw.split(TOPIC_SEPARATOR)
        if len(parts) < 2:
            return ZapMessage(kind="connection", raw=raw)

        topic = _CONTROL_CHARS.sub("", parts[0])
        body = parts[1]
        block = _DATA_BLOCK.search(body)
        if not block:
            return ZapMessage(kind="malformed", raw=raw, topic=topic)

        data: Dict[str, FieldValue] = {}
        for pair in block.group(1).split(";"):
            if not pair.strip():
                continue
            key, sep, value = pair.partition("=")
            if not key:
                continue
            # Bare keys are flags
            data[key] = value if sep else True

        return ZapMessage(
            kind="zap",
            raw=raw,
            topic=topic,
            message_type=body[:1] or None,
            data=data,
        )

    @staticmethod
    def is_match_event(message: ZapMessage) -> bool:
        """Whether a parsed frame carries match state worth normalizing."""
        if not message.is_zap:
            return False

        topic = message.topic or ""
        if "time" in topic.lower():
            return False
        # Session and info topics
        if topic.startswith("I") or topic.startswith("S_"):
            return False

        return any(key in message.data for key in EVENT_KEYS)

    @staticmethod
    def extract_match_data(message: ZapMessage) -> Optional[Dict[str, Any]]:
        """Pull the known fields out of a parsed frame."""
        if not message.data:
            return None

        data = message.data
        result: Dict[str, Any] = {"topic": message.topic}
        for key, name in (
            ("IT", "match_id"),
            ("NA", "name"),
            ("SC", "score"),
            ("TI", "time"),
            ("PS", "period"),
            ("MG", "minute"),
        ):
            if data.get(key) not in (None, "", True):
                result[name] = data[key]

        # Flags only qualify a tagged frame; on their own they are running counts
        event = None
        code = data.get("EV")
        if code:
            result["event_code"] = code
            event = EVENT_CODES.get(str(code))
            if event is None:
                for flag, name in EVENT_FLAGS.items():
                    if data.get(flag) not in (None, "", "0"):
                        event = name
                        break
        if event is not None:
            result["event"] = event
            result["team"] = data.get("TM")
            result["player"] = data.get("PL")
        return result

    @staticmethod
    def format(message: ZapMessage) -> str:
        """One-line rendering for logs and the CLI."""
        if message.is_zap:
            pairs = ";".join(f"{k}={v}" for k, v in message.data.items())
            return f"[{message.message_type}] {message.topic}: {pairs}"
        return f"[{message.kind}] {message.raw[:50]}"
