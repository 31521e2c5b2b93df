"""
pingsnap: sample ICMP echo statistics with the system ping utility and store
every run as a JSON snapshot. Entry point.
- Configuration from --config JSON, environment (IP, DATA_FOLDER, CHUNKSIZE,
  ITERATIONS, PING_DEADLINE, LOG_PATH) and flags, in increasing priority
- Exit status: 0 all samples stored, 1 some sample failed, 2 bad configuration
"""
import argparse
import asyncio
import sys
from pathlib import Path

from pingsnap.config import ConfigError, load_config
from pingsnap.logging_setup import setup_logging
from pingsnap.monitor import run_monitor


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="pingsnap – periodic ping snapshots")
    parser.add_argument("--target", help="Address or hostname to ping (env IP)")
    parser.add_argument("--data-folder", dest="data_folder", help="Snapshot directory (env DATA_FOLDER, default data)")
    parser.add_argument("--chunk-size", dest="chunk_size", type=int, help="Echo requests per sample (env CHUNKSIZE, default 3)")
    parser.add_argument("--iterations", type=int, help="Number of samples (env ITERATIONS, default 1)")
    parser.add_argument("--interval", type=float, help="Seconds between requests; selects the duration/size-bounded run")
    parser.add_argument("--timeout", type=float, help="Seconds ping runs for; selects the duration/size-bounded run")
    parser.add_argument("--payload-size", dest="payload_size", type=int, help="Payload bytes; selects the duration/size-bounded run")
    parser.add_argument("--deadline", type=float, help="Interrupt ping after this many seconds (env PING_DEADLINE)")
    parser.add_argument("--config", type=Path, help="JSON config file")
    parser.add_argument("--log-path", dest="log_path", help="Log directory (env LOG_PATH)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output on the console")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    overrides = {
        k: getattr(args, k)
        for k in (
            "target", "data_folder", "chunk_size", "iterations", "interval",
            "timeout", "payload_size", "deadline", "log_path",
        )
    }
    try:
        config = load_config(args.config, overrides=overrides)
    except ConfigError as e:
        print(f"pingsnap: {e}", file=sys.stderr)
        return 2

    logger = setup_logging(config.log_path or None, verbose=args.verbose, target=config.target)
    logger.info("pingsnap started")
    try:
        summary = asyncio.run(run_monitor(config))
    except KeyboardInterrupt:
        logger.info("pingsnap interrupted")
        return 130
    logger.info("pingsnap stopped")
    return 0 if summary.ok else 1


if __name__ == "__main__":
    sys.exit(main())
