"""Seoul Star Dream Agency — dev launcher. Starts the API server in watch mode."""

import argparse
import logging
import os
import signal
import subprocess
import sys
from pathlib import Path

from stardream.config import load_settings

ROOT = Path(__file__).parent


def main():
    settings = load_settings(ROOT / ".env")

    parser = argparse.ArgumentParser(description="Seoul Star Dream Agency dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Save directory (default: ./data)")
    parser.add_argument("--port", default=str(settings.port),
                        help=f"API port (default: {settings.port})")
    parser.add_argument("--clean", action="store_true",
                        help="Delete the existing save before starting")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    log = logging.getLogger("stardream.main")

    data_dir = args.data_dir or settings.data_dir
    if args.clean:
        save = Path(data_dir) / f"{settings.save_key}.json"
        save.unlink(missing_ok=True)
        log.info("Removed save %s", save)

    # Build env for the subprocess so the server picks up the same data dir
    env = os.environ.copy()
    env["DATA_DIR"] = str(Path(data_dir).resolve())

    procs: list[subprocess.Popen] = []

    def shutdown(*_):
        log.info("Shutting down...")
        for p in procs:
            p.terminate()
        for p in procs:
            p.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    log.info("Starting API on http://localhost:%s (llm=%s) ...", args.port, settings.llm_url)
    procs.append(subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "stardream.app:app", "--reload",
         "--host", settings.host, "--port", args.port,
         "--log-level", settings.log_level.lower()],
        cwd=ROOT, env=env,
    ))

    for p in procs:
        p.wait()


if __name__ == "__main__":
    main()
