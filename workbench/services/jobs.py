"""
Long-running backend jobs: status polling and export downloads.

Extraction and batch uploads return a job id; the backend reports progress
on a status endpoint until the job completes or fails.
"""

from __future__ import annotations

import asyncio
import csv
import html
import io
import json
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from workbench.config import settings
from workbench.errors import JobFailedError, JobTimeoutError, WorkbenchError
from workbench.models import ExportFormat
from workbench.services.api_client import ApiClient

logger = logging.getLogger(__name__)

DONE_STATUSES = {"completed", "completed_with_errors"}
FAILED_STATUSES = {"failed"}

EXPORT_EXTENSIONS: dict[str, str] = {
    "csv": "csv",
    "json": "json",
    "excel": "xlsx",
    "xml": "xml",
    "html": "html",
}

# Formats that can be rendered locally when the export endpoint fails
FALLBACK_FORMATS = {"csv", "excel", "json"}

StatusFetcher = Callable[[str], Awaitable[dict]]


async def wait_for_job(
    fetch_status: StatusFetcher,
    job_id: str,
    poll_interval: float | None = None,
    max_wait: float = settings.DEFAULT_JOB_MAX_WAIT,
    on_status: Callable[[dict], None] | None = None,
) -> dict:
    """
    Poll a job until it finishes.

    Args:
        fetch_status: e.g. ApiClient.processing_status or ApiClient.batch_status
        job_id: Job to poll
        poll_interval: Seconds between polls (defaults to settings.POLL_INTERVAL)
        max_wait: Give up after this many seconds
        on_status: Called with every status payload

    Returns:
        The final status payload

    Raises:
        JobFailedError: the job reported status "failed"
        JobTimeoutError: max_wait elapsed first
    """
    interval = settings.POLL_INTERVAL if poll_interval is None else poll_interval
    started = time.monotonic()

    while True:
        status = await fetch_status(job_id)
        if on_status:
            on_status(status)

        state = status.get("status")
        elapsed = time.monotonic() - started

        if state in DONE_STATUSES:
            logger.info("Job %s finished: status=%s, elapsed=%.1fs", job_id, state, elapsed)
            return status

        if state in FAILED_STATUSES:
            logger.error("Job %s failed: %s", job_id, status.get("error"))
            raise JobFailedError(job_id, status.get("error"))

        if elapsed > max_wait:
            logger.warning("Job %s timed out after %.1fs", job_id, elapsed)
            raise JobTimeoutError(f"Job {job_id} timed out after {max_wait} seconds")

        logger.debug("Job polling: job_id=%s, status=%s, elapsed=%.1fs", job_id, state, elapsed)
        await asyncio.sleep(interval)


def export_filename(fmt: str, fallback: bool = False) -> str:
    """extraction_<ms>.<ext>; a local Excel fallback is an HTML table saved as .xls."""
    ext = "xls" if fallback and fmt == "excel" else EXPORT_EXTENSIONS[fmt]
    return f"extraction_{int(time.time() * 1000)}.{ext}"


def render_table_csv(table: dict[str, Any]) -> str:
    columns = table.get("columns", [])
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(columns)
    for row in table.get("rows", []):
        writer.writerow([row.get(col) or "" for col in columns])
    return buf.getvalue()


def render_table_html(table: dict[str, Any]) -> str:
    """A bare HTML table, which spreadsheet apps open as a worksheet."""
    columns = table.get("columns", [])
    parts = ["<table>", "<tr>"]
    parts.extend(f"<th>{html.escape(str(col))}</th>" for col in columns)
    parts.append("</tr>")
    for row in table.get("rows", []):
        parts.append("<tr>")
        parts.extend(f"<td>{html.escape(str(row.get(col) or ''))}</td>" for col in columns)
        parts.append("</tr>")
    parts.append("</table>")
    return "".join(parts)


def export_locally(data: dict[str, Any], fmt: str, directory: Path) -> Path:
    """
    Render extracted data without the backend.

    JSON writes the whole payload. CSV and Excel render the first table.

    Raises:
        ValueError: there is no tabular data to export
    """
    if fmt == "json":
        path = Path(directory) / export_filename(fmt, fallback=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        return path

    tables = data.get("tables") or []
    if not tables:
        raise ValueError("No tabular data available for export")

    table = tables[0]
    content = render_table_csv(table) if fmt == "csv" else render_table_html(table)
    path = Path(directory) / export_filename(fmt, fallback=True)
    path.write_text(content, encoding="utf-8")
    return path


async def export_data(api: ApiClient, data: dict[str, Any], fmt: ExportFormat, directory: Path) -> Path:
    """
    Download an export of `data` into `directory`.

    CSV, Excel and JSON fall back to a local rendering when the export
    endpoint fails. Other formats re-raise.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    try:
        content = await api.export_data(data, fmt)
    except WorkbenchError as e:
        if fmt not in FALLBACK_FORMATS:
            raise
        logger.warning("Export to %s failed (%s), rendering locally", fmt, e)
        return export_locally(data, fmt, directory)

    path = directory / export_filename(fmt)
    path.write_bytes(content)
    logger.info("Exported %s to %s", fmt, path)
    return path
