"""
Parallel batch retrieval of DANFE documents.

Runs independent DanfePipeline instances in worker processes. Each worker
owns its own Playwright driver and browser, so nothing is shared between
retrievals; concurrency is capped by max_workers.

Key Features:
- One isolated pipeline (and browser) per access key
- Statistics aggregation from worker results (no shared state)
- Results delivered to an optional callback in the parent process
- Failure tracking with CSV export

Usage:
    pipeline = BatchFetchPipeline()
    stats = pipeline.fetch_many(keys, max_workers=2, on_result=print)
"""

from concurrent.futures import ProcessPoolExecutor, as_completed
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
import logging

import pandas as pd

from danfe_retriever.api.pipeline import DanfePipeline
from danfe_retriever.log import mask_access_key

logger = logging.getLogger(__name__)

NOT_FOUND_CODE = 'NOT_FOUND'


def _fetch_worker(access_key: str) -> Dict[str, Any]:
    """
    Worker function for retrieving a single NF-e in a child process.

    Builds a fresh DanfePipeline (and therefore a fresh browser) per key.
    Unexpected exceptions are converted into a failure envelope so one bad
    key never takes the batch down.

    Args:
        access_key: 44-digit access key

    Returns:
        Envelope as produced by DanfePipeline.fetch()
    """
    try:
        return DanfePipeline().fetch(access_key)
    except Exception as e:
        logger.error(
            f"Worker failed unexpectedly for {mask_access_key(access_key)}: {e}",
            exc_info=True
        )
        return {
            'success': False,
            'requestId': None,
            'chaveAcesso': access_key,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'durationMs': None,
            'error': str(e),
            'errorCode': type(e).__name__,
            'retryable': False,
        }


class BatchFetchPipeline:
    """
    Fetch many NF-e documents with a bounded pool of worker processes.

    Example:
        pipeline = BatchFetchPipeline(failures_dir='failures')

        results = []
        stats = pipeline.fetch_many(
            ['35241145070190000232550010006198721341979067', ...],
            max_workers=2,
            on_result=results.append
        )
        # {'success': 9, 'failed': 1, 'not_found': 1}
    """

    def __init__(self, failures_dir: Union[str, Path] = "failures"):
        self.failures_dir = Path(failures_dir)

    def fetch_many(
        self,
        access_keys: List[str],
        max_workers: int = 2,
        on_result: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> Dict[str, int]:
        """
        Retrieve every key in its own worker.

        Duplicate keys are fetched once. Results arrive in completion order.

        Args:
            access_keys: Access keys to fetch
            max_workers: Maximum concurrent browsers (default: 2)
            on_result: Called in the parent process with each envelope

        Returns:
            Statistics dictionary:
            {
                'success': int,    # Documents retrieved and parsed
                'failed': int,     # Any failure, not_found included
                'not_found': int   # Keys the portal reported as unknown
            }

        Raises:
            ValueError: If max_workers < 1
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")

        keys = list(dict.fromkeys(access_keys))
        stats = self._init_statistics()
        failures: List[Dict[str, Any]] = []

        if not keys:
            logger.info("No access keys to fetch")
            return stats

        logger.info(f"Starting batch fetch: {len(keys)} keys, {max_workers} workers")

        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            future_to_key = {
                executor.submit(_fetch_worker, key): key
                for key in keys
            }

            processed = 0
            for future in as_completed(future_to_key):
                envelope = future.result()
                processed += 1

                if envelope['success']:
                    stats['success'] += 1
                else:
                    stats['failed'] += 1
                    if envelope.get('errorCode') == NOT_FOUND_CODE:
                        stats['not_found'] += 1
                    failures.append({
                        'chave_acesso': future_to_key[future],
                        'error_code': envelope.get('errorCode'),
                        'error': envelope.get('error'),
                        'retryable': envelope.get('retryable'),
                        'timestamp': envelope.get('timestamp'),
                    })

                if on_result is not None:
                    on_result(envelope)

                logger.info(
                    f"Progress: {processed}/{len(keys)} "
                    f"({stats['success']} success, {stats['failed']} failed)"
                )

        if failures:
            self._save_failures_csv(failures)

        logger.info(
            f"Batch fetch complete: {stats['success']} success, "
            f"{stats['failed']} failed ({stats['not_found']} not found)"
        )
        return stats

    def _init_statistics(self) -> Dict[str, int]:
        return {
            'success': 0,
            'failed': 0,
            'not_found': 0
        }

    def _save_failures_csv(self, failures: List[Dict[str, Any]]) -> Optional[Path]:
        """
        Save failed keys to failures_<timestamp>.csv for a later re-run.

        Returns:
            Path of the written CSV, or None if writing failed
        """
        try:
            self.failures_dir.mkdir(parents=True, exist_ok=True)

            df = pd.DataFrame(failures)

            csv_path = self.failures_dir / f"failures_{datetime.now():%Y%m%d_%H%M%S}.csv"
            df.to_csv(csv_path, index=False, encoding='utf-8')

            logger.info(f"Saved {len(failures)} failure(s) to {csv_path}")
            return csv_path
        except OSError as e:
            logger.error(f"Failed to save failures CSV: {e}", exc_info=True)
            return None
