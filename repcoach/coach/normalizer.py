"""Spoken transcript normalization: number words to digits, command matching.

Speech recognizers regularly mishear short rep counts ("tree" for three,
"ate" for eight). Replacement is whole-word only, so "often" or "o'clock"
never lose letters to the table.
"""

import re
from enum import Enum
from typing import Mapping, Optional

# Phonetic near-matches included alongside the real number words
NUMBER_WORDS = {
    # Zero
    "zero": "0", "oh": "0",
    # One
    "one": "1", "won": "1", "wan": "1",
    # Two
    "two": "2", "to": "2", "too": "2", "tu": "2",
    # Three (most common mishearing)
    "three": "3", "tree": "3", "free": "3", "thee": "3",
    # Four
    "four": "4", "for": "4", "fore": "4", "floor": "4",
    # Five
    "five": "5", "fife": "5", "hive": "5",
    # Six
    "six": "6", "sex": "6", "sicks": "6",
    # Seven
    "seven": "7", "sven": "7",
    # Eight
    "eight": "8", "ate": "8", "ait": "8",
    # Nine
    "nine": "9", "nein": "9", "mine": "9",
    # Ten and above
    "ten": "10", "tin": "10",
    "eleven": "11", "leaven": "11",
    "twelve": "12", "twelfth": "12",
    "thirteen": "13",
    "fourteen": "14",
    "fifteen": "15",
    "sixteen": "16",
    "seventeen": "17",
    "eighteen": "18",
    "nineteen": "19",
    "twenty": "20",
}

_TOKEN_SPLIT = re.compile(r"[\s,]+")
_EDGE_PUNCTUATION = ".!?;:\"'()"


class Command(str, Enum):
    END_WORKOUT = "end_workout"
    DONE = "done"
    START = "start"
    REPEAT = "repeat"
    SKIP = "skip"
    HELP = "help"


# Multi-word commands, matched anywhere in the utterance
WORKOUT_END_PHRASES = ("end workout", "finish workout", "stop workout")
SKIP_PHRASES = ("next exercise",)

# Single-word commands, matched against the whole utterance
DONE_WORDS = {"done", "end", "finish"}
START_WORDS = {"yes", "ready", "go", "start"}
SKIP_WORDS = {"skip"}

# Question-style commands may lead a longer utterance ("what did you say")
REPEAT_WORDS = {"repeat", "what"}
HELP_WORDS = {"how", "help", "instructions"}


def _build_pattern(table: Mapping[str, str]) -> Optional[re.Pattern]:
    if not table:
        return None
    # Longest first so "sixteen" is never shadowed by "six"
    words = sorted(table, key=len, reverse=True)
    return re.compile(r"\b(" + "|".join(re.escape(w) for w in words) + r")\b", re.IGNORECASE)


_DEFAULT_PATTERN = _build_pattern(NUMBER_WORDS)


def normalize(raw_transcript: str, extra_numbers: Optional[Mapping[str, str]] = None) -> str:
    """Replace spoken number words (and their mishearings) with digits.

    extra_numbers adds user-specific mappings (e.g. {"necks": "6"}); they
    take precedence over the built-in table.
    """
    if not raw_transcript:
        return raw_transcript or ""

    if extra_numbers:
        table = dict(NUMBER_WORDS)
        table.update({k.lower(): v for k, v in extra_numbers.items()})
        pattern = _build_pattern(table)
    else:
        table = NUMBER_WORDS
        pattern = _DEFAULT_PATTERN

    return pattern.sub(lambda m: table[m.group(1).lower()], raw_transcript)


def tokenize(text: str) -> list[str]:
    """Split on whitespace/commas and trim sentence punctuation from each token."""
    tokens = []
    for tok in _TOKEN_SPLIT.split(text.strip()):
        tok = tok.strip(_EDGE_PUNCTUATION)
        if tok:
            tokens.append(tok)
    return tokens


def extract_numbers(text: str) -> list[int]:
    """Return the integer tokens of an already-normalized transcript, in order."""
    return [int(tok) for tok in tokenize(text) if tok.isdigit()]


def apply_command_aliases(text: str, aliases: Mapping[str, str]) -> str:
    """Rewrite whole words using user command mappings (e.g. "dun" -> "done")."""
    if not aliases or not text:
        return text
    pattern = _build_pattern({k.lower(): v for k, v in aliases.items()})
    lowered = {k.lower(): v for k, v in aliases.items()}
    return pattern.sub(lambda m: lowered[m.group(1).lower()], text)


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(r"\b" + re.escape(phrase) + r"\b", text) is not None


def match_command(text: str) -> Optional[Command]:
    """Map a lowercased, trimmed utterance to a command, or None.

    Order matters: "end workout" must win over the set-level "end".
    """
    text = " ".join(tokenize(text.lower()))
    if not text:
        return None

    if any(_contains_phrase(text, p) for p in WORKOUT_END_PHRASES):
        return Command.END_WORKOUT
    if text in DONE_WORDS:
        return Command.DONE
    if text in START_WORDS:
        return Command.START

    first_word = text.split()[0]
    if first_word in REPEAT_WORDS:
        return Command.REPEAT
    if text in SKIP_WORDS or any(_contains_phrase(text, p) for p in SKIP_PHRASES):
        return Command.SKIP
    if first_word in HELP_WORDS:
        return Command.HELP
    return None
