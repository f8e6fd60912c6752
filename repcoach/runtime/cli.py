# repcoach/runtime/cli.py
from __future__ import annotations
import argparse
import json
import logging
import sys
from typing import Iterator, List, Optional

import uvicorn

from repcoach.common.config import get_settings
from repcoach.common.events import EXERCISES, RepResult
from repcoach.counter.exercises import make_counter
from repcoach.counter.feedback import form_cues
from repcoach.counter.pipeline import FrameLoop
from repcoach.counter.pose_core import Frame, FrameLayoutError
from repcoach.counter.web_pipeline import frame_from_message

logger = logging.getLogger(__name__)


def format_rep(rep: RepResult) -> str:
    mark = "valid" if rep.is_valid else "invalid"
    cues = "; ".join(form_cues(rep))
    return f"rep {rep.repetition}: {mark} | {cues}"


def read_frames(path: str) -> Iterator[Frame]:
    """One JSON frame message per line; blank or malformed lines are skipped."""
    with open(path, "r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield frame_from_message(json.loads(line))
            except (json.JSONDecodeError, FrameLayoutError, KeyError, TypeError, ValueError) as e:
                logger.warning("line %d skipped: %s", lineno, e)


def replay(path: str, exercise: str) -> List[RepResult]:
    reps: List[RepResult] = []

    def on_rep(rep: RepResult):
        reps.append(rep)
        print(format_rep(rep), flush=True)

    loop = FrameLoop(
        make_counter(exercise),
        on_rep=on_rep,
        on_ready=lambda: print("pose ready", flush=True),
    )
    loop.run(read_frames(path))
    loop.close()
    valid = sum(1 for r in reps if r.is_valid)
    print(f"total: {len(reps)} reps ({valid} valid)", flush=True)
    return reps


def camera(exercise: str, device: int) -> int:
    from repcoach.counter.camera import CameraFrameSource

    loop = FrameLoop(
        make_counter(exercise),
        on_rep=lambda rep: print(format_rep(rep), flush=True),
        on_ready=lambda: print("pose ready, start moving", flush=True),
    )
    source = CameraFrameSource(device)
    print(f"Counting {exercise.replace('_', ' ')}. Press Ctrl+C to stop.", flush=True)
    try:
        loop.run(source)
    except KeyboardInterrupt:
        print("\nExiting…", flush=True)
    finally:
        loop.close()
        source.close()
    print(f"total: {loop.count} reps", flush=True)
    return loop.count


def serve(host: str, port: int):
    from repcoach.runtime.server import app

    print(f"Serving on http://{host}:{port}", flush=True)
    uvicorn.run(app, host=host, port=port, log_level=get_settings().log_level.lower())


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="repcoach", description="Count and grade exercise reps from keypoints.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_replay = sub.add_parser("replay", help="run a JSON-lines keypoint recording through the counter")
    p_replay.add_argument("path")
    p_replay.add_argument("--exercise", "-e", required=True, help=", ".join(EXERCISES))

    p_cam = sub.add_parser("camera", help="count reps live from a webcam (needs the camera extra)")
    p_cam.add_argument("--exercise", "-e", required=True, help=", ".join(EXERCISES))
    p_cam.add_argument("--device", type=int, default=settings.camera_index)

    p_serve = sub.add_parser("serve", help="run the HTTP/websocket service")
    p_serve.add_argument("--host", default=settings.host)
    p_serve.add_argument("--port", type=int, default=settings.port)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        if args.command == "replay":
            replay(args.path, args.exercise)
        elif args.command == "serve":
            serve(args.host, args.port)
        else:
            camera(args.exercise, args.device)
    except (ValueError, OSError, RuntimeError) as e:
        print("Error:", e, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
