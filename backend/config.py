import os
from dotenv import load_dotenv

load_dotenv()

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
MODEL = os.getenv("PULSE_MODEL", "claude-sonnet-4-5")

# Seconds before the narrative call is treated as a transport failure
NARRATIVE_TIMEOUT = float(os.getenv("PULSE_NARRATIVE_TIMEOUT", "15"))

DATABASE_PATH = os.getenv("PULSE_DATABASE_PATH", "progress_pulse.db")
STORAGE_KEY = "progressPulseTasks"

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("PULSE_CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("PULSE_LOG_LEVEL", "INFO").upper()
