import os

from dotenv import load_dotenv

load_dotenv()

# Hevy (remote workout tracker)
HEVY_API_KEY = os.getenv("HEVY_API_KEY")  # Optional: overrides the vault
HEVY_BASE_URL = os.getenv("HEVY_BASE_URL", "https://api.hevyapp.com/v1")
HEVY_TIMEOUT = float(os.getenv("HEVY_TIMEOUT", "15.0"))  # Seconds per request
DEFAULT_PROVIDER = "hevy"

# Local storage (credentials, custom phonetics, settings)
DATA_DIR = os.path.expanduser(os.getenv("REPCOACH_DATA_DIR", "~/.repcoach"))
REPCOACH_USER = os.getenv("REPCOACH_USER", "default")  # Vault and phonetics are scoped per user
CREDENTIALS_FILE = os.path.join(DATA_DIR, "credentials.json")
PHONETICS_FILE = os.path.join(DATA_DIR, "phonetics.json")
SETTINGS_FILE = os.path.join(DATA_DIR, "settings.json")

# Speech-to-Text
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_WHISPER_MODEL = os.getenv("GROQ_WHISPER_MODEL", "whisper-large-v3-turbo")
STT_PROVIDER = os.getenv("STT_PROVIDER", "groq")  # "groq" (API) or "local" (faster-whisper on CPU)
STT_FALLBACK_ENABLED = True  # Fall back to local Whisper if Groq fails (per-request)
WHISPER_MODEL = os.getenv("WHISPER_MODEL", "base.en")  # Only short commands and numbers, a small model is enough
WHISPER_PROMPT = "Workout coach. Rep counts: one, two, three. Commands: done, skip, ready, repeat."
MIN_TRANSCRIPT_LENGTH = 2  # Shorter transcripts are treated as noise

# Microphone / continuous listening
AUDIO_INPUT_DEVICE = int(os.getenv("AUDIO_INPUT_DEVICE")) if os.getenv("AUDIO_INPUT_DEVICE") else None
LISTEN_ENERGY_THRESHOLD = float(os.getenv("LISTEN_ENERGY_THRESHOLD", "0.015"))  # RMS float32 speech onset
LISTEN_SILENCE_DURATION = float(os.getenv("LISTEN_SILENCE_DURATION", "0.8"))  # Seconds of silence that ends an utterance (rep counts are short)
LISTEN_MAX_SEGMENT = float(os.getenv("LISTEN_MAX_SEGMENT", "8.0"))  # Max seconds per utterance
LISTEN_MIN_SEGMENT = float(os.getenv("LISTEN_MIN_SEGMENT", "0.25"))  # Ignore blips shorter than this

# Text-to-Speech
TTS_RATE = float(os.getenv("TTS_RATE", "1.1"))  # Relative speaking rate, slightly faster for workout context
TTS_VOLUME = float(os.getenv("TTS_VOLUME", "1.0"))
TTS_BASE_WORDS_PER_MINUTE = 175  # pyttsx3 rate at TTS_RATE == 1.0

# Self-hearing suppression
SELF_HEARING_WINDOW = float(os.getenv("SELF_HEARING_WINDOW", "3.0"))  # Seconds a spoken sentence stays in the filter buffer

# Session timing
ANNOUNCE_DELAY = float(os.getenv("ANNOUNCE_DELAY", "0.5"))  # Let the start message queue before the first announcement
EXERCISE_TRANSITION_DELAY = float(os.getenv("EXERCISE_TRANSITION_DELAY", "1.0"))  # Pause before announcing the next exercise after a skip
TIMER_TICK_SECONDS = float(os.getenv("TIMER_TICK_SECONDS", "1.0"))
REST_ANNOUNCE_INTERVAL = int(os.getenv("REST_ANNOUNCE_INTERVAL", "10"))  # Announce remaining rest every N seconds
TRANSITION_REST_SECONDS = int(os.getenv("TRANSITION_REST_SECONDS")) if os.getenv("TRANSITION_REST_SECONDS") else None  # Unset = use the finished exercise's rest duration

# Routine defaults when the tracker leaves fields empty
DEFAULT_SETS = int(os.getenv("DEFAULT_SETS", "3"))
DEFAULT_REPS = int(os.getenv("DEFAULT_REPS", "10"))
DEFAULT_DURATION_SECONDS = int(os.getenv("DEFAULT_DURATION_SECONDS", "60"))
DEFAULT_REST_SECONDS = int(os.getenv("DEFAULT_REST_SECONDS", "60"))

# Remote sync
REMOTE_CREATE_WAIT = float(os.getenv("REMOTE_CREATE_WAIT", "5.0"))  # Max seconds completion waits for an in-flight create
REMOTE_CREATE_POLL = float(os.getenv("REMOTE_CREATE_POLL", "0.1"))

# Coach phrases (repcoach/phrase_presets/*.yaml)
PHRASES_PRESET = os.getenv("REPCOACH_PHRASES", "default")
