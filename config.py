"""Configuration module for Bookboard."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Configuration
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-opus-4-5-20251101")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.3"))
MAX_OUTPUT_TOKENS = int(os.getenv("MAX_OUTPUT_TOKENS", "16384"))

# Chunking Configuration
CHUNK_THRESHOLD_CHARS = int(os.getenv("CHUNK_THRESHOLD_CHARS", "200000"))
CHUNK_GROUP_SIZE = int(os.getenv("CHUNK_GROUP_SIZE", "3"))  # Sections per request when split

# Rate Limiting
API_CALL_DELAY = float(os.getenv("API_CALL_DELAY", "1.0"))  # Seconds between chunk requests
MAX_RETRIES = 3
RETRY_BACKOFF_MULTIPLIER = 2

# Board Layout
GRID_ORIGIN_X = 100
GRID_ORIGIN_Y = 80
GRID_COLUMNS = 4
CARD_WIDTH = 240
CARD_HEIGHT = 200

# Manual placement scan
PLACEMENT_START_X = 80
PLACEMENT_START_Y = 60
BOARD_MAX_X = 1600
PLACEMENT_MAX_ITERATIONS = 100

# Storage Configuration
DB_PATH = Path(os.getenv("DB_PATH", "./output/bookboard.db"))

# Ensure output directories exist
DB_PATH.parent.mkdir(parents=True, exist_ok=True)

# Output Paths
OUTPUT_DIR = Path("./output")
EXPORTS_DIR = OUTPUT_DIR / "exports"
RUN_LOGS_DIR = OUTPUT_DIR / "run_logs"

# Ensure output directories exist
EXPORTS_DIR.mkdir(parents=True, exist_ok=True)
RUN_LOGS_DIR.mkdir(parents=True, exist_ok=True)
