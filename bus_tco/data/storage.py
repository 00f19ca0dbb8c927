"""Input and result save/load using JSON serialization."""

import json
import logging
from pathlib import Path

from bus_tco.models.inputs import TCOInput
from bus_tco.models.results import ScenarioComparison, TCOResult

logger = logging.getLogger(__name__)


def _write_json(data, filepath: str) -> None:
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    logger.info("Wrote %s", path)


def save_input(tco_input: TCOInput, filepath: str) -> None:
    """Save a TCO input to a JSON file.

    Args:
        tco_input: Input to save.
        filepath: Output file path (should end in .json).

    Raises:
        OSError: If file cannot be written.
    """
    _write_json(tco_input.to_dict(), filepath)


def load_input(filepath: str) -> TCOInput:
    """Load a TCO input from a JSON file.

    Args:
        filepath: Path to the JSON input file.

    Returns:
        Reconstructed TCOInput. Missing sections take their defaults.

    Raises:
        FileNotFoundError: If file does not exist.
        json.JSONDecodeError: If file is not valid JSON.
        ValueError: If the scenario type is not recognized.
    """
    with open(filepath, "r", encoding="utf-8") as f:
        data = json.load(f)
    return TCOInput.from_dict(data)


def save_result(result: TCOResult, filepath: str) -> None:
    _write_json(result.to_dict(), filepath)


def save_comparison(comparison: ScenarioComparison, filepath: str) -> None:
    """Save a four-scenario comparison, including every annual record."""
    _write_json(comparison.to_dict(), filepath)
