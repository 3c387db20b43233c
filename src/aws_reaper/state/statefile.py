"""
Optional on-disk snapshot of reaper states.

One ``region,id,<state tag>`` line per resource. Tags stay the system of
record; the file only lets an operator seed or inspect states between runs.
"""

from typing import Dict, Iterable, Tuple

from ..core.logger import setup_logger
from .state import ReaperState, StateCodec

logger = setup_logger(__name__)

StateKey = Tuple[str, str]


def save_states(path: str, entries: Iterable[Tuple[str, str, ReaperState]]) -> int:
    """Write ``(region, id, state)`` entries to ``path``. Returns lines written."""
    count = 0
    with open(path, "w", encoding="utf-8") as handle:
        for region, resource_id, state in entries:
            handle.write(f"{region},{resource_id},{StateCodec.serialize(state)}\n")
            count += 1

    logger.info("Saved reaper states", extra={"path": path, "count": count})
    return count


def load_states(path: str) -> Dict[StateKey, ReaperState]:
    """Read a state file. Malformed lines are skipped; a missing file yields nothing."""
    states: Dict[StateKey, ReaperState] = {}
    try:
        with open(path, encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                parts = line.split(",", 2)
                if len(parts) != 3:
                    logger.warning(
                        "Skipping malformed state file line",
                        extra={"path": path, "line": line_number},
                    )
                    continue
                region, resource_id, tag_value = parts
                states[(region, resource_id)] = StateCodec.parse(tag_value)
    except FileNotFoundError:
        logger.error("State file not found", extra={"path": path})
        return {}

    logger.info("Loaded reaper states", extra={"path": path, "count": len(states)})
    return states
