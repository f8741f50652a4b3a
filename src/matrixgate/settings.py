from __future__ import annotations
import os

NUM_RETRIES = int(os.environ.get("MATRIXGATE_NUM_RETRIES", "5"))
RETRY_BACKOFF_SECONDS = float(os.environ.get("MATRIXGATE_RETRY_BACKOFF", "5"))
WORKERS = int(os.environ.get("MATRIXGATE_WORKERS", "0")) or max(1, (os.cpu_count() or 2) - 1)
QUEUE_SIZE = int(os.environ.get("MATRIXGATE_QUEUE_SIZE", "16"))
MATRIXGATE_HOME = os.environ.get("MATRIXGATE_HOME", ".matrixgate")
