"""Choice tables used by settings validation and the CLI."""

LOG_LEVELS: dict[str, str] = {
    "DEBUG": "Debug",
    "INFO": "Info",
    "WARNING": "Warning",
    "ERROR": "Error",
}

# Narration languages the backend can write and voice
SUPPORTED_LANGUAGES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
}

# Text-to-speech voices offered by the backend
SUPPORTED_VOICES: dict[str, str] = {
    "alloy": "Neutral and balanced",
    "ash": "Warm and clear",
    "ballad": "Soft storyteller",
    "coral": "Gentle and friendly",
    "echo": "Calm and steady",
    "fable": "Expressive narrator",
    "nova": "Bright and upbeat",
    "onyx": "Deep and soothing",
    "sage": "Wise and measured",
    "shimmer": "Light and playful",
}

# Playback speed bounds (multiplier)
MIN_PLAYBACK_SPEED = 0.5
MAX_PLAYBACK_SPEED = 2.0
