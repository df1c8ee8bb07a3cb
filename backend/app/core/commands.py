import re
from enum import Enum
from typing import List, Pattern, Tuple


class VoiceCommand(str, Enum):
    START = "start"
    NEXT = "next"
    PREVIOUS = "previous"
    REPEAT = "repeat"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    HELP = "help"
    STOP_LISTENING = "stop_listening"
    EXIT = "exit"
    UNKNOWN = "unknown"


# Checked top to bottom, so "complete" wins over "next" in "next, then we're all done".
COMMAND_KEYWORDS: List[Tuple[VoiceCommand, List[str]]] = [
    (VoiceCommand.COMPLETE, ["complete", "finish", "finished", "done cooking", "all done"]),
    (VoiceCommand.START, ["let's start", "lets start", "begin", "start cooking"]),
    (VoiceCommand.NEXT, ["next", "go on"]),
    (VoiceCommand.REPEAT, ["repeat", "again", "say that again"]),
    (VoiceCommand.PREVIOUS, ["previous", "go back", "back"]),
    (VoiceCommand.PAUSE, ["pause", "wait"]),
    (VoiceCommand.RESUME, ["resume", "continue"]),
    (VoiceCommand.HELP, ["help", "hey chef", "question"]),
    (VoiceCommand.STOP_LISTENING, ["stop listening", "cancel"]),
    (VoiceCommand.EXIT, ["exit", "leave", "goodbye", "bye"]),
]

# Whole words only: "bay leaves" must not read as "leave".
_PATTERNS: List[Tuple[VoiceCommand, Pattern]] = [
    (command, re.compile(r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")\b"))
    for command, keywords in COMMAND_KEYWORDS
]


def parse_command(text: str) -> VoiceCommand:
    """Keyword based mapping of a finalized utterance to a navigation command."""
    text = text.lower().strip().rstrip(".!?")

    if text == "start":
        return VoiceCommand.START

    for command, pattern in _PATTERNS:
        if pattern.search(text):
            return command

    return VoiceCommand.UNKNOWN
