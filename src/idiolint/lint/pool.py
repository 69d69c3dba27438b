"""
Lint Pool - lints many files concurrently.

Files are independent, so each one is linted on its own worker thread. The
only thing workers share is the read-only Linter (config + rule registry)
and a cancellation Event.

Usage:
    from idiolint.lint.pool import lint_paths

    result = lint_paths(paths, Linter(config), jobs=4, timeout=60)
    for report in result.reports:
        ...
    if result.cancelled:
        print("timed out:", result.cancelled)

On timeout the Event is set; workers stop at their next check (between
lines while tokenizing, between top-level statements while indexing) and
files not yet started are skipped. Reports that completed are returned.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from idiolint.findings import FileReport
from idiolint.lint.engine import Linter
from idiolint.parser.lexer import AnalysisCancelled

logger = logging.getLogger(__name__)


DEFAULT_JOBS = os.cpu_count() or 1


@dataclass
class RunResult:
    """Outcome of linting a set of files."""
    reports: List[FileReport] = field(default_factory=list)   # input order, completed only
    cancelled: List[str] = field(default_factory=list)        # stopped by timeout
    failures: List[Tuple[str, str]] = field(default_factory=list)  # (path, error message)

    @property
    def complete(self) -> bool:
        return not self.cancelled and not self.failures

    @property
    def has_errors(self) -> bool:
        return any(report.has_errors for report in self.reports)


@dataclass
class _Outcome:
    path: str
    report: Optional[FileReport] = None
    cancelled: bool = False
    error: Optional[str] = None


def _lint_one(linter: Linter, path: str, cancel: threading.Event) -> _Outcome:
    if cancel.is_set():
        return _Outcome(path, cancelled=True)
    try:
        return _Outcome(path, report=linter.lint_file(path, cancel))
    except AnalysisCancelled:
        logger.debug("Cancelled: %s", path)
        return _Outcome(path, cancelled=True)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Cannot read %s: %s", path, e)
        return _Outcome(path, error=f"cannot read file: {e}")
    except Exception as e:
        logger.exception("Linting %s failed", path)
        return _Outcome(path, error=f"internal error: {type(e).__name__}: {e}")


def lint_paths(paths: Sequence[Union[str, Path]], linter: Linter,
               jobs: Optional[int] = None, timeout: Optional[float] = None) -> RunResult:
    """
    Lint files on a thread pool.

    Args:
        paths: Files to lint
        linter: Shared Linter
        jobs: Worker count (defaults to the number of CPUs)
        timeout: Whole-run limit in seconds; None waits for every file

    Returns:
        RunResult with reports in input order
    """
    paths = [str(p) for p in paths]
    workers = max(1, jobs or DEFAULT_JOBS)
    cancel = threading.Event()
    logger.debug("Linting %d file(s) with %d worker(s)", len(paths), workers)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="idiolint") as ex:
        futures = [ex.submit(_lint_one, linter, path, cancel) for path in paths]
        _, pending = wait(futures, timeout=timeout)
        if pending:
            logger.warning("Timeout after %ss; cancelling %d unfinished file(s)", timeout, len(pending))
            cancel.set()
            for future in pending:
                future.cancel()

    result = RunResult()
    for path, future in zip(paths, futures):
        if future.cancelled():
            result.cancelled.append(path)
            continue
        outcome = future.result()
        if outcome.report is not None:
            result.reports.append(outcome.report)
        elif outcome.cancelled:
            result.cancelled.append(path)
        else:
            result.failures.append((path, outcome.error))

    logger.info("Linted %d file(s): %d cancelled, %d failed",
                len(result.reports), len(result.cancelled), len(result.failures))
    return result
