"""
RepCoach: voice workout coach for Hevy routines.

    repcoach --api-key KEY          save and verify a Hevy API key
    repcoach --list-routines        show your routines
    repcoach --routine ID           coach a routine by voice (typed input always works)
    repcoach --routine ID --text    typed input only, no microphone or speech

Heavy voice imports (sounddevice, pyttsx3, faster-whisper, groq) are
deferred until a voice session actually starts.
"""

import asyncio
import logging
import sys
import threading

logging.basicConfig(
    level=logging.INFO,
    format="[RepCoach] %(asctime)s %(name)s %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("repcoach")


def _thread_exception_hook(args):
    logger.error(
        "Unhandled exception in thread '%s': %s",
        args.thread.name if args.thread else "unknown",
        args.exc_value,
        exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
    )


threading.excepthook = _thread_exception_hook

from repcoach.config import (  # noqa: E402
    CREDENTIALS_FILE,
    HEVY_API_KEY,
    PHONETICS_FILE,
    PHRASES_PRESET,
    REPCOACH_USER,
    SELF_HEARING_WINDOW,
    SETTINGS_FILE,
)
from repcoach.errors import ProviderError, VoiceUnavailableError  # noqa: E402
from repcoach.coach.engine import WorkoutEngine  # noqa: E402
from repcoach.coach.events import EventHub  # noqa: E402
from repcoach.coach.models import Routine  # noqa: E402
from repcoach.coach.phonetics import PhoneticBook  # noqa: E402
from repcoach.coach.sync import RemoteSync  # noqa: E402
from repcoach.companion import WorkoutCompanion  # noqa: E402
from repcoach.phrases import load_phrases  # noqa: E402
from repcoach.providers.base import WorkoutProvider  # noqa: E402
from repcoach.providers.hevy import HevyProvider  # noqa: E402
from repcoach.providers.manager import ProviderManager  # noqa: E402
from repcoach.utils.json_store import JsonDocument  # noqa: E402
from repcoach.utils.self_hearing import SelfHearingFilter  # noqa: E402
from repcoach.utils.vault import CredentialVault  # noqa: E402


def _print_message(role: str, text: str) -> None:
    prefix = "Coach" if role == "ai" else "You"
    print(f"{prefix}: {text}", flush=True)


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, companion: WorkoutCompanion, text_only: bool) -> None:
    """Forward typed lines to the loop. A daemon thread so a blocked readline never delays exit."""

    def _reader():
        for line in sys.stdin:
            loop.call_soon_threadsafe(companion.handle_text, line)
        if text_only:
            logger.info("Input closed, ending workout")
            loop.call_soon_threadsafe(companion.handle_text, "end workout")

    threading.Thread(target=_reader, daemon=True, name="stdin-reader").start()


async def run_session(provider: WorkoutProvider, routine_id: str, phrases_name: str, text_only: bool) -> int:
    try:
        routine = Routine.from_dict(await provider.get_routine(routine_id))
    except ProviderError as e:
        logger.error("Could not load routine %s: %s", routine_id, e)
        return 1
    if not routine.exercises:
        logger.error("Routine '%s' has no exercises", routine.title)
        return 1

    loop = asyncio.get_running_loop()
    voice = None
    if not text_only:
        from repcoach.perception.voice import LocalVoiceDriver

        try:
            voice = LocalVoiceDriver.create(loop)
        except VoiceUnavailableError as e:
            logger.warning("Voice unavailable (%s), continuing with typed input", e)

    events = EventHub()
    events.subscribe("message", _print_message)
    engine = WorkoutEngine(
        events=events,
        phrases=load_phrases(phrases_name),
        sync=RemoteSync(provider),
        phonetics=PhoneticBook(JsonDocument(PHONETICS_FILE), user=REPCOACH_USER),
        voice=voice,
    )
    companion = WorkoutCompanion(engine, voice, SelfHearingFilter(SELF_HEARING_WINDOW))
    _start_stdin_reader(loop, companion, text_only=voice is None)

    try:
        await companion.run(routine)
    finally:
        if voice is not None:
            # Give the summary a moment to be spoken
            await asyncio.sleep(2.0)
            voice.shutdown()

    summary = engine.summary()
    logger.info("Logged %d sets across %d exercises", summary.total_sets, summary.exercise_count)
    return 0


async def list_routines(provider: WorkoutProvider) -> int:
    try:
        routines = await provider.get_routines(page=1, page_size=10)
    except ProviderError as e:
        logger.error("Could not fetch routines: %s", e)
        return 1
    if not routines:
        print("No routines found.")
    for routine in routines:
        count = len(routine.get("exercises") or [])
        print(f"{routine.get('id')}  {routine.get('title')}  ({count} exercises)")
    return 0


async def _main_async(args, manager: ProviderManager) -> int:
    provider = manager.active
    try:
        if args.api_key:
            if not await provider.connect(args.api_key):
                logger.error("API key rejected by %s", provider.name)
                return 1
            print(f"Connected to {provider.name}.")
            if not (args.list_routines or args.routine):
                return 0

        if not provider.connected:
            logger.error("No API key. Run with --api-key KEY or set HEVY_API_KEY.")
            return 1

        if args.list_routines:
            return await list_routines(provider)
        return await run_session(provider, args.routine, args.phrases, args.text)
    finally:
        await manager.aclose()


def main():
    import argparse

    parser = argparse.ArgumentParser(description="RepCoach voice workout coach")
    parser.add_argument("--list-routines", action="store_true", help="List routines from the tracker")
    parser.add_argument("--routine", metavar="ID", help="Routine id to coach")
    parser.add_argument("--api-key", metavar="KEY", help="Verify and save a tracker API key")
    parser.add_argument("--disconnect", action="store_true", help="Forget the saved API key")
    parser.add_argument("--text", action="store_true", help="Typed input only, no microphone or speech")
    parser.add_argument("--phrases", default=PHRASES_PRESET, help="Phrase preset name or path to YAML file")
    parser.add_argument(
        "--add-phonetic",
        nargs=2,
        metavar=("ALTERNATIVE", "CANONICAL"),
        help="Teach a mishearing, e.g. --add-phonetic necks 6",
    )
    parser.add_argument("--category", default="number", choices=["number", "command"], help="Category for --add-phonetic")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.add_phonetic:
        book = PhoneticBook(JsonDocument(PHONETICS_FILE), user=REPCOACH_USER)
        try:
            mapping = book.add(args.add_phonetic[0], args.add_phonetic[1], args.category)
        except ValueError as e:
            logger.error(str(e))
            sys.exit(1)
        print(f"'{mapping.alternative}' -> '{mapping.canonical}' ({mapping.category})")
        return

    vault = CredentialVault(CREDENTIALS_FILE, user=REPCOACH_USER)
    manager = ProviderManager(JsonDocument(SETTINGS_FILE))
    hevy = HevyProvider(vault=vault)
    manager.register(hevy)
    manager.load_saved()

    if args.disconnect:
        manager.clear_active()
        print("Disconnected.")
        return

    if HEVY_API_KEY:
        hevy.use_api_key(HEVY_API_KEY)
    else:
        hevy.load_credentials()

    if not (args.api_key or args.list_routines or args.routine):
        parser.print_help()
        return

    try:
        code = asyncio.run(_main_async(args, manager))
    except KeyboardInterrupt:
        logger.info("Interrupted, workout not finished")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
