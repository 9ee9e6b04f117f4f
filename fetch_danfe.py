"""
DANFE Fetch Script

Retrieves NF-e XML documents from meudanfe.com.br and prints the normalized
result as JSON.

Usage:
    # One key: pretty-printed envelope, exit code 0 on success, 1 on failure
    python fetch_danfe.py 35241145070190000232550010006198721341979067

    # Many keys (arguments or --keys-file, one per line): one JSON line per
    # key, exit code 0 only if every key succeeded
    python fetch_danfe.py --keys-file keys.txt --workers 2

Chromium runs headed by default (Cloudflare); on servers wrap with xvfb-run.
Logs go to stderr, stdout carries JSON only.
"""

import argparse
import json
import sys
from typing import List, Optional

from danfe_retriever.api import BatchFetchPipeline, DanfePipeline
from danfe_retriever.config import get_app_config
from danfe_retriever.log import configure_logging


def _load_keys(args: argparse.Namespace) -> List[str]:
    keys = list(args.keys)
    if args.keys_file:
        with open(args.keys_file, "r", encoding="utf-8") as f:
            keys.extend(line.strip() for line in f if line.strip())
    return keys


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Fetch NF-e XML from meudanfe.com.br and print it as JSON"
    )
    parser.add_argument("keys", nargs="*", help="44-digit NF-e access key(s)")
    parser.add_argument("--keys-file", help="File with one access key per line")
    parser.add_argument("--workers", type=int, default=2,
                        help="Concurrent browsers for multiple keys (default: 2)")
    parser.add_argument("--failures-dir", default="failures",
                        help="Directory for the failures CSV (default: failures)")
    parser.add_argument("--log-level", default=None,
                        help="Logging level (default: LOG_LEVEL from .env or INFO)")
    args = parser.parse_args(argv)

    config = get_app_config()
    configure_logging(args.log_level or config.log_level)

    keys = _load_keys(args)
    if not keys:
        parser.error("at least one access key is required")

    # === Single key ===
    if len(keys) == 1:
        envelope = DanfePipeline(config=config).fetch(keys[0])
        print(json.dumps(envelope, ensure_ascii=False, indent=2))
        return 0 if envelope["success"] else 1

    # === Batch ===
    def emit(envelope):
        print(json.dumps(envelope, ensure_ascii=False), flush=True)

    pipeline = BatchFetchPipeline(failures_dir=args.failures_dir)
    stats = pipeline.fetch_many(keys, max_workers=args.workers, on_result=emit)
    return 0 if stats["failed"] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
