"""
Configuration settings related to content moderation.

These are the reference values for frame sampling, the unsafe-content
threshold and the classifier retry policy.
"""

# ======================================================================================
# Frame Sampling
# ======================================================================================

# One frame is extracted every FRAME_INTERVAL_SECONDS seconds of video.
FRAME_INTERVAL_SECONDS = 1

# Frames are written as frame-1.jpg, frame-2.jpg, ... in extraction order.
FRAME_FILE_PREFIX = "frame-"
FRAME_FILE_PATTERN = f"{FRAME_FILE_PREFIX}%d.jpg"
FRAMES_DIR_NAME = "frames"


# ======================================================================================
# Scoring
# ======================================================================================

# A frame violates policy when its score is strictly greater than this value.
# The same value drives both the early exit and the final decision.
UNSAFE_THRESHOLD = 0.5

# The classifier label whose score is used. Other labels are ignored.
UNSAFE_LABEL = "nsfw"

# Error message persisted on blocked records. The mobile client shows the same text.
BLOCKED_ERROR_MESSAGE = "Content violates community guidelines"


# ======================================================================================
# Classifier Service
# ======================================================================================

DEFAULT_CLASSIFIER_URL = (
    "https://api-inference.huggingface.co/models/Falconsai/nsfw_image_detection"
)

# Environment variables consulted when the YAML config leaves these blank.
CLASSIFIER_URL_ENV = "VISTAVID_CLASSIFIER_URL"
CLASSIFIER_API_KEY_ENV = "VISTAVID_CLASSIFIER_API_KEY"

# The service answers with this marker while the model is still warming up.
CLASSIFIER_LOADING_MARKER = "is currently loading"

# Total attempts per frame, and the wait used when the service suggests none.
CLASSIFIER_MAX_ATTEMPTS = 5
CLASSIFIER_DEFAULT_WAIT_SECONDS = 5.0

# Per-request network timeout.
CLASSIFIER_TIMEOUT_SECONDS = 30.0
