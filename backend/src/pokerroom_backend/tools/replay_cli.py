from __future__ import annotations

import argparse
import json
from pathlib import Path

from pokerroom_backend.engine.models import GameSnapshot
from pokerroom_backend.engine.replay import replay


def _run(path: Path) -> int:
    payload = json.loads(path.read_text())
    snapshot = GameSnapshot.model_validate(payload["snapshot"])
    result = replay(snapshot, payload.get("actions", []))
    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0 if all(result.invariant_checks.values()) else 1


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Replay a saved {snapshot, actions} file and check chip invariants",
    )
    parser.add_argument("replay_file", type=Path)
    args = parser.parse_args()
    raise SystemExit(_run(args.replay_file))


if __name__ == "__main__":
    main()
