import logging
import os
import pickle
from typing import Dict, Optional

import pandas as pd
from pydantic import ConfigDict, validate_call


def setup_logging(stage_name: str, log_file: str, level=logging.INFO):
    """Configure logging for an engine component.

    Args:
        stage_name: Name for the logger (typically __name__)
        log_file: Path to the log file to write to
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    os.makedirs(os.path.dirname(log_file), exist_ok=True)

    logger = logging.getLogger(stage_name)
    logger.handlers.clear()

    # Disable propagation to root logger to prevent duplicate logging
    logger.propagate = False

    logger.setLevel(level)

    # File Handler
    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(file_handler)

    return logger


@validate_call(config=ConfigDict(arbitrary_types_allowed=True))
def safe_read_csv(filepath: str, usecols: Optional[list[str]] = None) -> pd.DataFrame:
    """Safely read CSV file"""
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        df = pd.read_csv(filepath, dtype=str).fillna("")

        df.columns = df.columns.str.lower()
        if usecols:
            missing_cols = [c for c in usecols if c.lower() not in df.columns]
            if missing_cols:
                raise ValueError(f"Missing columns in input CSV: {missing_cols}")
            return df[usecols]
        return df
    except pd.errors.ParserError as e:
        raise pd.errors.ParserError(f"Error parsing {filepath}: {e}")


def parse_tag_weights(raw: str) -> Dict[str, float]:
    """
    Parse a catalog tag string into a tag -> weight mapping.

    Format is "tag:weight|tag:weight". A tag without a weight gets 1.0.
    Repeated tags keep the last weight.
    """
    tags = {}
    if not raw or not raw.strip():
        return tags

    for part in raw.split("|"):
        part = part.strip()
        if not part:
            continue
        name, _, weight = part.partition(":")
        name = name.strip().lower()
        if not name:
            continue
        value = float(weight) if weight.strip() else 1.0
        if value < 0:
            raise ValueError(f"Tag weight must be non-negative, got {name}={value}")
        tags[name] = value
    return tags


def load_pickle(file_path: str):
    with open(file_path, "rb") as f:
        return pickle.load(f)


def save_pickle(data, filename):
    os.makedirs(os.path.dirname(os.path.abspath(filename)), exist_ok=True)
    with open(filename, "wb") as f:
        pickle.dump(data, f)
