# backend/services/transcript.py
"""
Transcript Reconciliation

The browser buffers the live transcript as it arrives, but the voice
platform keeps its own authoritative call record. Before evaluation the two
are reconciled:

1. role-tagged lines built from the call's ``messages``
2. else from ``artifact.messages``
3. else the flat ``transcript`` field

The first candidate that yields text replaces the client transcript only
when it is strictly longer (or when the client sent none).
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

INTERVIEWER = "Interviewer"
CANDIDATE = "Candidate"

ROLE_ALIASES = {
    "assistant": INTERVIEWER,
    "bot": INTERVIEWER,
    "ai": INTERVIEWER,
    "user": CANDIDATE,
    "human": CANDIDATE,
    "candidate": CANDIDATE,
}

SKIPPED_ROLES = {"system", "tool", "function", "tool_calls", "tool_call_result"}

# Fields consulted when "role" is missing or unrecognized
AUXILIARY_ROLE_FIELDS = ("speaker", "source", "from")

CANDIDATE_LINE_PREFIXES = ("candidate:", "user:", "human:", "you:")

FEW_CANDIDATE_TURNS = 3


def normalize_role(message: Dict[str, Any]) -> Optional[str]:
    """Map a call message to Interviewer/Candidate, or None to skip it."""
    role = str(message.get("role") or "").strip().lower()
    if role in SKIPPED_ROLES:
        return None
    if role in ROLE_ALIASES:
        return ROLE_ALIASES[role]

    for key in AUXILIARY_ROLE_FIELDS:
        value = str(message.get(key) or "").strip().lower()
        if value in SKIPPED_ROLES:
            return None
        if value in ROLE_ALIASES:
            return ROLE_ALIASES[value]
    return None


def message_text(message: Dict[str, Any]) -> str:
    for key in ("content", "message", "text"):
        value = message.get(key)
        if isinstance(value, str) and value.strip():
            return " ".join(value.split())
    return ""


def transcript_from_messages(messages: Any) -> str:
    """Role-tagged transcript ("Interviewer: ..." / "Candidate: ...") in call order."""
    if not isinstance(messages, list):
        return ""

    lines = []
    for message in messages:
        if not isinstance(message, dict):
            continue
        speaker = normalize_role(message)
        text = message_text(message)
        if speaker and text:
            lines.append(f"{speaker}: {text}")
    return "\n".join(lines)


def transcript_from_call(call: Optional[Dict[str, Any]]) -> str:
    """Best transcript the call record offers, trying each source in order."""
    if not call:
        return ""

    from_messages = transcript_from_messages(call.get("messages"))
    if from_messages:
        return from_messages

    artifact = call.get("artifact")
    if isinstance(artifact, dict):
        from_artifact = transcript_from_messages(artifact.get("messages"))
        if from_artifact:
            return from_artifact

    flat = call.get("transcript")
    if isinstance(flat, str) and flat.strip():
        return flat.strip()
    return ""


def reconcile(client_transcript: Optional[str], call: Optional[Dict[str, Any]]) -> str:
    """Longer transcript wins; the client's stands on ties."""
    client = (client_transcript or "").strip()
    platform = transcript_from_call(call)
    if platform and (not client or len(platform) > len(client)):
        return platform
    return client


@dataclass
class TranscriptQuality:
    word_count: int
    line_count: int
    candidate_turns: int

    def warning_note(self) -> Optional[str]:
        """Advisory context for the evaluator when the candidate barely spoke."""
        if self.candidate_turns == 0:
            return (
                "WARNING: The candidate did not contribute any identifiable answers. "
                "Score every category at the bottom of the scale and say so plainly."
            )
        if self.candidate_turns < FEW_CANDIDATE_TURNS:
            return (
                f"WARNING: The candidate answered only {self.candidate_turns} time(s) "
                f"({self.word_count} words in the whole transcript). "
                "Do not extrapolate beyond what was actually said."
            )
        return None


def quality_signals(transcript: Optional[str]) -> TranscriptQuality:
    text = transcript or ""
    lines: List[str] = [line.strip() for line in text.splitlines() if line.strip()]
    candidate_turns = sum(1 for line in lines if line.lower().startswith(CANDIDATE_LINE_PREFIXES))
    return TranscriptQuality(
        word_count=len(text.split()),
        line_count=len(lines),
        candidate_turns=candidate_turns,
    )
