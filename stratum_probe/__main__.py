import argparse
import copy
from typing import Any, Dict

from .config import ProbeConfig, build_service_config, load_json_config, validate_config
from .metrics import OutputPathError
from .service import ProbeService


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Watch stratum block broadcasts via supervisorctl and write "
            "continuity/update gauges for the node-exporter textfile collector."
        )
    )
    parser.add_argument("--config", help="Path to JSON config file.")
    parser.add_argument(
        "--mode",
        choices=["follow", "poll"],
        help="follow keeps 'supervisorctl tail -f' running; poll reads the last N lines each window.",
    )
    parser.add_argument("--service", help="supervisord program name to tail.")
    parser.add_argument("--output-path", help="Metrics file written every window.")
    parser.add_argument(
        "--window-seconds", type=float, help="Seconds between metric updates."
    )
    parser.add_argument(
        "--tail-lines", type=int, help="Lines requested per window (poll mode)."
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Evaluate a single window and exit (poll mode only).",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Print per-window block heights."
    )
    return parser.parse_args()


def merged_config_from_cli(args: argparse.Namespace) -> ProbeConfig:
    raw: Dict[str, Any] = {}
    if args.config:
        raw = load_json_config(args.config)

    merged = copy.deepcopy(raw)
    if args.mode:
        merged["mode"] = args.mode
    if args.service:
        merged["service_name"] = args.service
    if args.output_path:
        merged["output_path"] = args.output_path
    if args.window_seconds is not None:
        merged["window_seconds"] = args.window_seconds
    if args.tail_lines is not None:
        merged["tail_lines"] = args.tail_lines
    if args.run_once:
        merged["run_once"] = True
    if args.debug:
        merged["debug"] = True

    return build_service_config(merged)


def main() -> int:
    args = parse_args()
    config = merged_config_from_cli(args)
    validate_config(config)

    service = ProbeService(config)
    try:
        return service.run()
    except OutputPathError as exc:
        print("[FATAL] %s" % exc, flush=True)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
