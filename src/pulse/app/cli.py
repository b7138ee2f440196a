from __future__ import annotations

import argparse
import sys

from pulse.app.runner import run


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="pulse")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_replay = sub.add_parser("replay", help="Replay a scripted host session through the tracker")
    p_replay.add_argument("--config", default="config/replay.yaml")

    args = parser.parse_args(argv)

    if args.cmd == "replay":
        result = run(args.config)
        # minimal stdout signal
        print(
            f"run_id={result.ctx.run_id} user_id={result.user_id} "
            f"delivered={result.delivered} pending={result.pending}"
        )
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
