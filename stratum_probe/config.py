import json
from dataclasses import dataclass
from typing import Any, Dict, Optional


DEFAULT_OUTPUT_PATH = "/opt/node-exporter/prom/go-quai-stratum.prom"
DEFAULT_SERVICE_NAME = "go-quai-stratum"
SUPPORTED_MODES = ("follow", "poll")


@dataclass
class ProbeConfig:
    mode: str = "follow"
    service_name: str = DEFAULT_SERVICE_NAME
    tail_channel: str = "stdout"
    output_path: str = DEFAULT_OUTPUT_PATH
    window_seconds: float = 60.0
    tail_lines: int = 300
    queue_size: int = 10000
    startup_timeout_seconds: float = 10.0
    atomic_write: bool = True
    skip_backlog: bool = True
    run_once: bool = False
    debug: bool = False


def load_json_config(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def build_service_config(raw: Optional[Dict[str, Any]]) -> ProbeConfig:
    payload = raw or {}

    return ProbeConfig(
        mode=str(payload.get("mode", ProbeConfig.mode)).lower(),
        service_name=str(payload.get("service_name", ProbeConfig.service_name)),
        tail_channel=str(payload.get("tail_channel", ProbeConfig.tail_channel) or ""),
        output_path=str(payload.get("output_path", ProbeConfig.output_path)),
        window_seconds=float(payload.get("window_seconds", ProbeConfig.window_seconds)),
        tail_lines=int(payload.get("tail_lines", ProbeConfig.tail_lines)),
        queue_size=int(payload.get("queue_size", ProbeConfig.queue_size)),
        startup_timeout_seconds=float(
            payload.get("startup_timeout_seconds", ProbeConfig.startup_timeout_seconds)
        ),
        atomic_write=bool(payload.get("atomic_write", ProbeConfig.atomic_write)),
        skip_backlog=bool(payload.get("skip_backlog", ProbeConfig.skip_backlog)),
        run_once=bool(payload.get("run_once", ProbeConfig.run_once)),
        debug=bool(payload.get("debug", ProbeConfig.debug)),
    )


def validate_config(config: ProbeConfig) -> None:
    if config.mode not in SUPPORTED_MODES:
        raise ValueError("Unsupported mode: %s" % config.mode)
    if not config.service_name:
        raise ValueError("service_name must not be empty")
    if not config.output_path:
        raise ValueError("output_path must not be empty")
    if config.window_seconds <= 0:
        raise ValueError("window_seconds must be positive")
    if config.tail_lines <= 0:
        raise ValueError("tail_lines must be positive")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be positive")
    if config.startup_timeout_seconds <= 0:
        raise ValueError("startup_timeout_seconds must be positive")
    if config.mode == "follow" and config.run_once:
        raise ValueError("--run-once is only supported in poll mode")
