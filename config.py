# How often the scan loop wakes up to decide whether to analyze (seconds).
TICK_INTERVAL = 1.0

# Minimum seconds between two outbound analysis calls.
# A persona switch may skip this once; a retry after an error never does.
MIN_SPACING = 3.0

# Pause after the API reports a rate limit / exhausted quota (seconds).
# Must stay longer than MIN_SPACING or the cooldown would be meaningless.
COOLDOWN_DURATION = 10.0

# Claude model for label analysis (image + text, multimodal).
ANALYSIS_MODEL = "claude-sonnet-4-6"

# Claude model for co-pilot follow-up questions (short conversational answers).
COPILOT_MODEL = "claude-haiku-4-5-20251001"

# Output cap for one structured verdict.
MAX_OUTPUT_TOKENS = 8192

# Resize frames to this width (px) before sending to the API.
# Labels stay readable at 1280 and the upload stays small.
IMAGE_MAX_WIDTH = 1280

# JPEG quality for uploaded frames. Lower = faster round trips.
JPEG_QUALITY = 60

# Joins a persona's base instruction with the chosen sub-option's instruction.
CONTEXT_DELIMITER = " SPECIFIC CONTEXT: "

# The radar chart always has exactly these five dimensions, in this order.
RADAR_DIMENSIONS = ("Processing", "Nutrition", "Safety", "Honesty", "Sustainability")

# ── Output ports ───────────────────────────────────────────────────────────────
# Commands tried in order for speech playback / clipboard. First one on PATH wins.
SPEECH_COMMANDS = (("say",), ("espeak",), ("spd-say",))
CLIPBOARD_COMMANDS = (("pbcopy",), ("wl-copy",), ("xclip", "-selection", "clipboard"))
