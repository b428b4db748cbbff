"""Configuration constants and environment variable loading for ezanim."""

import os
from dotenv import load_dotenv

load_dotenv()

# ==================== API KEYS ====================
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY")
SLACK_BOT_TOKEN = os.getenv("SLACK_BOT_TOKEN")
SLACK_CHANNEL_ID = os.getenv("SLACK_CHANNEL_ID", "")

# ==================== MODELS ====================
SCRIPT_MODEL = os.getenv("SCRIPT_MODEL", "claude-sonnet-4-5-20250929")
ANIMATION_MODEL = os.getenv("ANIMATION_MODEL", "claude-sonnet-4-5-20250929")
CRITIC_MODEL = os.getenv("CRITIC_MODEL", "claude-sonnet-4-5-20250929")
JUDGE_MODEL = os.getenv("JUDGE_MODEL", "claude-haiku-4-5-20251001")
TRANSCRIPTION_MODEL = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

# ==================== VOICE ====================
ELEVENLABS_VOICE_ID = os.getenv("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")  # Rachel
ELEVENLABS_MODEL_ID = os.getenv("ELEVENLABS_MODEL_ID", "eleven_multilingual_v2")
ELEVENLABS_OUTPUT_FORMAT = os.getenv("ELEVENLABS_OUTPUT_FORMAT", "mp3_44100_128")

# ==================== TIMING ====================
DURATION_TAIL_SECONDS = 2.0  # silence kept after the last spoken word
DEFAULT_DURATION_SECONDS = 20.0  # used when transcription returns no words

# ==================== QA LOOP ====================
MAX_QA_LOOPS = int(os.getenv("MAX_QA_LOOPS", "2"))
# "issues" or "approve": what an unparseable critic response counts as
CRITIC_PARSE_FALLBACK = os.getenv("CRITIC_PARSE_FALLBACK", "issues")
QA_STRICT_PARSING = os.getenv("QA_STRICT_PARSING", "false").lower() in ("1", "true", "yes")
REVIEW_HTML_LIMIT = 50000  # characters of markup sent to critic/judge/fixer

# ==================== RENDER ====================
RENDER_FPS = int(os.getenv("RENDER_FPS", "60"))
ASPECT_RATIO_DIMENSIONS = {
    "16:9": (1920, 1080),
    "9:16": (1080, 1920),
    "1:1": (1080, 1080),
}
DEFAULT_ASPECT_RATIO = "16:9"
VIDEO_OUTPUT_DIR = os.getenv("VIDEO_OUTPUT_DIR", "/tmp/ezanim")

# ==================== CAPTURE ====================
TIMELINE_GLOBAL = "tl"
CAPTURE_FLAG = "__CAPTURE_MODE__"
TIMELINE_WAIT_MS = int(os.getenv("TIMELINE_WAIT_MS", "15000"))
PAGE_LOAD_TIMEOUT_MS = int(os.getenv("PAGE_LOAD_TIMEOUT_MS", "30000"))
CAPTURE_SETTLE_MS = int(os.getenv("CAPTURE_SETTLE_MS", "20"))

# ==================== ENCODER ====================
FFMPEG_BIN = os.getenv("FFMPEG_PATH") or os.getenv("FFMPEG_BIN") or "ffmpeg"
FFMPEG_CRF = int(os.getenv("FFMPEG_CRF", "18"))
FFMPEG_PRESET = os.getenv("FFMPEG_PRESET", "veryfast")
FFMPEG_PIX_FMT = "yuv420p"

# ==================== STORAGE ====================
STORAGE_DRIVER = os.getenv("STORAGE_DRIVER", "r2")  # "r2" or "local"
LOCAL_STORAGE_DIR = os.getenv("LOCAL_STORAGE_DIR", os.path.join(os.getcwd(), "storage"))
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:5050")
R2_ENDPOINT = os.getenv("R2_ENDPOINT")
R2_ACCESS_KEY = os.getenv("R2_ACCESS_KEY")
R2_SECRET_KEY = os.getenv("R2_SECRET_KEY")
R2_BUCKET = os.getenv("R2_BUCKET")
R2_PUBLIC_URL = os.getenv("R2_PUBLIC_URL")
PRESIGN_EXPIRES = 60 * 60  # 1 hour

# ==================== PERSISTENCE ====================
STORE_PATH = os.getenv("STORE_PATH")  # directory for JSON lines logs; in-memory only when unset
REQUEST_HISTORY_LIMIT = int(os.getenv("REQUEST_HISTORY_LIMIT", "50"))  # versions kept per request

# ==================== ASSETS ====================
ASSET_CATALOG_PATH = os.getenv("ASSET_CATALOG_PATH")
ASSET_RESULTS = int(os.getenv("ASSET_RESULTS", "3"))

# ==================== WORKERS ====================
CREATION_WORKERS = int(os.getenv("CREATION_WORKERS", "2"))
RENDER_WORKERS = int(os.getenv("RENDER_WORKERS", "1"))
JOB_RETENTION = int(os.getenv("JOB_RETENTION", "1000"))  # finished job handles kept for /jobs lookups

# ==================== SERVER ====================
SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("SERVER_PORT", "5050"))
MIN_PROMPT_LENGTH = 10
