import json
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from precomputing.errors import CheckpointError


@dataclass(frozen=True)
class Checkpoint:
    """Generator progress: every record below next_hand_index is on disk."""
    next_hand_index: int
    written_records: int
    calculations_done: int
    updated_at_unix: int

    @classmethod
    def now(cls, next_hand_index: int, calculations_done: int) -> "Checkpoint":
        return cls(next_hand_index, next_hand_index, calculations_done, int(time.time()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nextHandIndex": self.next_hand_index,
            "writtenRecords": self.written_records,
            "calculationsDone": self.calculations_done,
            "updatedAtUnix": self.updated_at_unix,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Checkpoint":
        try:
            return cls(
                next_hand_index=int(data["nextHandIndex"]),
                written_records=int(data["writtenRecords"]),
                calculations_done=int(data["calculationsDone"]),
                updated_at_unix=int(data["updatedAtUnix"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CheckpointError(f"Malformed checkpoint: {e}") from e


def save_checkpoint(path: Path, checkpoint: Checkpoint) -> None:
    """Write the checkpoint atomically (temporary file, then rename)."""
    path = Path(path)
    temp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w") as f:
            json.dump(checkpoint.to_dict(), f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except OSError as e:
        raise CheckpointError(f"Cannot write checkpoint {path}: {e}") from e


def load_checkpoint(path: Path) -> Optional[Checkpoint]:
    """Read a checkpoint; None when there is none."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CheckpointError(f"Cannot read checkpoint {path}: {e}") from e
    if not isinstance(data, dict):
        raise CheckpointError(f"Malformed checkpoint {path}")
    return Checkpoint.from_dict(data)


def remove_checkpoint(path: Path) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        raise CheckpointError(f"Cannot remove checkpoint {path}: {e}") from e
