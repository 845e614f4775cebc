# src/forest_compare/utils/env.py
from dotenv import load_dotenv
from pathlib import Path
import os

def load_env():
    """
    Load environment variables from a local .env file (when present) and
    return the ones the comparison pipeline reads.
    """
    dotenv_path = Path(".") / ".env"
    if dotenv_path.exists():
        load_dotenv(dotenv_path)
        print("[INFO] .env file loaded.")
    else:
        print("[WARN] No .env file found, using system environment variables.")

    return {
        "ENV": os.getenv("ENV", "local"),
        "EXPERIMENT_NAME": os.getenv("EXPERIMENT_NAME", "forest-compare"),
        "MLFLOW_TRACKING_URI": os.getenv("MLFLOW_TRACKING_URI"),
        "USE_MLFLOW": os.getenv("USE_MLFLOW", "false").lower() in ("1", "true", "yes"),
        "SEED": int(os.getenv("SEED", 42)),
    }
