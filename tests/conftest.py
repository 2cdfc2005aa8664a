import sys
from pathlib import Path

# Ensure the project root is on sys.path so `symcalc` is importable, and the
# backend directory so the API is importable as `app` the way uvicorn runs it
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / "backend"))
