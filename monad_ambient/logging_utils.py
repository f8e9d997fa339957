"""
Structured Logging and Swap Metrics
===================================
- JSON file logging with size-based rotation for machine parsing
- Per-operation timing collected into a MetricsCollector
- Rich table rendering of the collected metrics
"""

import json
import logging
import logging.handlers
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from rich.table import Table

from .utils import logger


@dataclass
class OperationMetric:
    """Timing and result of one engine operation."""
    operation: str
    start_time: float
    end_time: Optional[float] = None
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    tx_hashes: List[str] = field(default_factory=list)
    used_fallback: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def finalize(self, success: bool = True, error: Optional[str] = None):
        self.end_time = time.time()
        self.duration_ms = (self.end_time - self.start_time) * 1000
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'start_time': datetime.fromtimestamp(self.start_time).isoformat(),
            'end_time': datetime.fromtimestamp(self.end_time).isoformat() if self.end_time else None,
            'duration_ms': round(self.duration_ms, 2) if self.duration_ms is not None else None,
            'success': self.success,
            'error': self.error,
            'tx_hashes': list(self.tx_hashes),
            'used_fallback': self.used_fallback,
            'extra': self.extra,
        }


class MetricsCollector:
    """Collects and aggregates operation metrics."""

    def __init__(self):
        self.metrics: List[OperationMetric] = []
        self._lock = threading.Lock()
        self._operation_counts: Dict[str, Dict[str, int]] = {}
        self._operation_times: Dict[str, List[float]] = {}

    def add_metric(self, metric: OperationMetric):
        with self._lock:
            self.metrics.append(metric)

            op = metric.operation
            counts = self._operation_counts.setdefault(op, {'total': 0, 'success': 0, 'failure': 0, 'fallback': 0})
            counts['total'] += 1
            if metric.success:
                counts['success'] += 1
            else:
                counts['failure'] += 1
            if metric.used_fallback:
                counts['fallback'] += 1

            if metric.duration_ms is not None:
                self._operation_times.setdefault(op, []).append(metric.duration_ms)

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            summary = {
                'total_operations': len(self.metrics),
                'operations': {},
                'overall_success_rate': 0,
                'avg_duration_ms': 0
            }

            total_success = 0
            all_times: List[float] = []

            for op, counts in self._operation_counts.items():
                times = self._operation_times.get(op, [])
                summary['operations'][op] = {
                    'total': counts['total'],
                    'success': counts['success'],
                    'failure': counts['failure'],
                    'fallback': counts['fallback'],
                    'success_rate': round(counts['success'] / counts['total'] * 100, 2),
                    'avg_duration_ms': round(sum(times) / len(times), 2) if times else 0,
                    'max_duration_ms': round(max(times), 2) if times else 0,
                }
                total_success += counts['success']
                all_times.extend(times)

            if self.metrics:
                summary['overall_success_rate'] = round(total_success / len(self.metrics) * 100, 2)
            if all_times:
                summary['avg_duration_ms'] = round(sum(all_times) / len(all_times), 2)
            return summary

    def clear(self):
        with self._lock:
            self.metrics.clear()
            self._operation_counts.clear()
            self._operation_times.clear()

    def save_to_file(self, filepath: str):
        """Save all metrics to a JSON file."""
        summary = self.get_summary()
        with self._lock:
            data = {
                'summary': summary,
                'metrics': [m.to_dict() for m in self.metrics]
            }
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2)

    def to_table(self) -> Table:
        table = Table(title="Operation Metrics")
        table.add_column("Operation", style="cyan")
        table.add_column("Total", justify="right")
        table.add_column("Success", justify="right", style="green")
        table.add_column("Failure", justify="right", style="red")
        table.add_column("Fallback", justify="right", style="yellow")
        table.add_column("Avg ms", justify="right")

        for op, stats in self.get_summary()['operations'].items():
            table.add_row(
                op,
                str(stats['total']),
                str(stats['success']),
                str(stats['failure']),
                str(stats['fallback']),
                f"{stats['avg_duration_ms']:.2f}",
            )
        return table


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'source': {
                'file': record.filename,
                'line': record.lineno,
                'function': record.funcName
            }
        }

        if hasattr(record, 'extra'):
            log_data['extra'] = record.extra

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def add_json_file_handler(
    log_file: str,
    logger_name: str = "monad_ambient",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Handler:
    """Attach a rotating JSON-lines file handler to the package logger."""
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(JSONFormatter())
    logging.getLogger(logger_name).addHandler(handler)
    return handler


@contextmanager
def timed_operation(metrics: Optional[MetricsCollector], operation: str,
                    extra: Optional[Dict[str, Any]] = None) -> Iterator[OperationMetric]:
    """
    Time the enclosed block. The caller marks the metric's outcome; an
    escaping exception marks it failed. Exceptions are never suppressed.
    """
    metric = OperationMetric(operation=operation, start_time=time.time(), extra=dict(extra or {}))
    logger.debug(f"Starting {operation}")
    try:
        yield metric
    except BaseException as e:
        metric.finalize(success=False, error=str(e) or type(e).__name__)
        logger.debug(f"{operation} aborted after {metric.duration_ms:.2f}ms")
        raise
    else:
        metric.finalize(success=metric.success, error=metric.error)
        logger.debug(
            f"{operation} {'completed' if metric.success else 'failed'} in {metric.duration_ms:.2f}ms"
        )
    finally:
        if metrics is not None:
            metrics.add_metric(metric)
