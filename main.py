"""Chapter Director — dev launcher.

    python main.py                         start the API server (uvicorn, reload)
    python main.py --dispatch state.json   dispatch one event and print it
"""

import argparse
import asyncio
import logging
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13015")


def dispatch_once(snapshot_path: Path, trigger: str | None, mode: str | None) -> int:
    from chapter_director.config import DirectorConfig
    from chapter_director.errors import DirectorError
    from chapter_director.factory import create_service
    from chapter_director.models import DispatchRequest, PlayerNarrativeSnapshot

    try:
        config = DirectorConfig.from_environment()
        service = create_service(config)
        snapshot = PlayerNarrativeSnapshot.model_validate_json(snapshot_path.read_text())
        request = DispatchRequest(player_state=snapshot, trigger_reason=trigger)
        event = asyncio.run(service.generate_chapter_event(request, mode or config.mode))
    except DirectorError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(event.model_dump_json(by_alias=True, indent=2))
    return 0


def main():
    parser = argparse.ArgumentParser(description="Chapter Director dev launcher")
    parser.add_argument("--dispatch", type=Path, default=None, metavar="SNAPSHOT",
                        help="Dispatch one event for a player snapshot JSON file and exit")
    parser.add_argument("--trigger", default=None,
                        help="Trigger reason for --dispatch")
    parser.add_argument("--mode", choices=["sandbox", "live"], default=None,
                        help="Override AI_DIRECTOR_MODE")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.dispatch:
        sys.exit(dispatch_once(args.dispatch, args.trigger, args.mode))

    env = os.environ.copy()
    if args.mode:
        env["AI_DIRECTOR_MODE"] = args.mode

    print(f"Starting chapter director on http://localhost:{PORT} ...")
    proc = subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "--factory", "chapter_director.app:create_app",
         "--reload", "--host", HOST, "--port", PORT],
        cwd=ROOT, env=env,
    )

    def shutdown(*_):
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)
    proc.wait()


if __name__ == "__main__":
    main()
