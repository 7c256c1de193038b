"""
Coach phrase catalog.

Loads motivational lines and message templates from YAML presets
(repcoach/phrase_presets/*.yaml) or uses the built-in defaults. Missing categories
and templates fall back to the defaults, so a preset only needs to override
what it changes.
"""

import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger("repcoach.phrases")

PHRASES_DIR = Path(__file__).parent / "phrase_presets"

# Motivation categories, one is picked at random per message
_DEFAULT_MOTIVATION = {
    "rep_start": ["💪 Let's go!", "🔥 You got this!", "⚡ Power up!", "🎯 Focus!"],
    "rep_complete": [
        "Keep pushing!",
        "Nice and controlled!",
        "You're in the zone!",
        "Great form!",
        "Beast mode! 🔥",
        "Crushing it!",
        "That's the way!",
    ],
    "halfway_reps": [
        "Halfway there, stay strong!",
        "More than halfway! Keep it up!",
        "Over the hill, finish strong!",
    ],
    "last_reps": [
        "Almost done, push through!",
        "Last few reps, give it everything!",
        "Final push! You've got this!",
    ],
    "set_complete": [
        "🎉 Set complete! Great work!",
        "💪 Solid set!",
        "🔥 Crushed that set!",
        "⭐ Excellent work!",
    ],
    "exercise_complete": [
        "🏆 Exercise complete! You crushed it!",
        "💪 Awesome job on that exercise!",
        "🎉 Done with that one! Great effort!",
    ],
    "timer_halfway": ["Halfway there! Stay tight! 💪", "50% done! Keep holding!"],
    "timer_30sec": ["30 seconds left. You're crushing it!", "30 to go! Stay focused!"],
    "timer_15sec": ["15 seconds left. Push through!", "Final 15! You've got this!"],
}

# Fixed messages. Placeholders are filled with str.format().
_DEFAULT_TEMPLATES = {
    "workout_start": '🔥 Starting "{title}" workout!',
    "announce_reps": (
        "🔥 Next exercise: **{name}** ({sets} sets × {reps} reps, {rest} seconds rest).\n"
        "Tell me after each rep. I'll count down with you!"
    ),
    "announce_timed": (
        "🔥 Next exercise: **{name}** ({sets} sets × {seconds} seconds, {rest} seconds rest).\n"
        "This is a timed exercise. I'll count down for you!\n"
        "Ready for Set 1?"
    ),
    "rep_progress": "{remaining} left ✓ {motivation}",
    "rep_prompt": "Let's go! Tell me your rep count.",
    "timer_start": "{seconds} seconds starting NOW!",
    "timer_already_running": "Timer's running. {remaining} seconds left!",
    "rest_start": "Rest for {seconds} seconds.",
    "rest_remaining": "{seconds} seconds of rest left.",
    "rest_over_set": "Rest over! Ready for Set {set_number}?",
    "rest_over_exercise": "Rest over! Next exercise coming up.",
    "next_set_prompt": "Ready for Set {set_number}?",
    "skip": "⏭️ Skipping to next exercise...",
    "no_instructions": "No instructions available for {name}.",
    "instructions": "{name}: {notes}",
    "nothing_to_repeat": "Tell me your rep number, 'done' when finished with the set, or 'skip' to move on.",
    "workout_complete": (
        "🎉 **Workout Complete!**\n\n"
        "⏱️ Duration: {minutes} minutes\n"
        "🏋️ Exercises: {exercises}\n"
        "📊 Total Sets: {sets}\n\n"
        "Great job! Your workout has been logged."
    ),
}


@dataclass
class PhraseBook:
    name: str = "default"
    motivation: dict[str, list[str]] = field(default_factory=lambda: {k: list(v) for k, v in _DEFAULT_MOTIVATION.items()})
    templates: dict[str, str] = field(default_factory=lambda: dict(_DEFAULT_TEMPLATES))
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def pick(self, category: str) -> str:
        """Random line from a motivation category. Unknown categories return ''."""
        options = self.motivation.get(category) or _DEFAULT_MOTIVATION.get(category) or []
        return self.rng.choice(options) if options else ""

    def render(self, key: str, **values) -> str:
        """Format a template. Unknown keys return the key itself (never crashes)."""
        template = self.templates.get(key, _DEFAULT_TEMPLATES.get(key, key))
        try:
            return template.format(**values)
        except (KeyError, IndexError) as e:
            logger.warning("Phrase template '%s' missing value %s", key, e)
            return template


def load_phrases(name_or_path: str, seed: Optional[int] = None) -> PhraseBook:
    """Load a phrase preset by name (repcoach/phrase_presets/{name}.yaml) or file path."""
    yaml_path = PHRASES_DIR / f"{name_or_path}.yaml"
    if not yaml_path.is_file():
        yaml_path = Path(name_or_path)
    if not yaml_path.is_file():
        available = [f.stem for f in PHRASES_DIR.glob("*.yaml")]
        raise FileNotFoundError(f"Phrase preset '{name_or_path}' not found. Available: {', '.join(available) or 'none'}")

    with open(yaml_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    motivation = {k: list(v) for k, v in _DEFAULT_MOTIVATION.items()}
    for category, lines in (data.get("motivation") or {}).items():
        if isinstance(lines, list) and lines:
            motivation[category] = [str(line) for line in lines]

    templates = dict(_DEFAULT_TEMPLATES)
    templates.update({k: str(v) for k, v in (data.get("templates") or {}).items()})

    book = PhraseBook(
        name=data.get("name", yaml_path.stem),
        motivation=motivation,
        templates=templates,
        rng=random.Random(seed),
    )
    logger.info("Phrases loaded: %s (%d motivation categories)", book.name, len(book.motivation))
    return book
