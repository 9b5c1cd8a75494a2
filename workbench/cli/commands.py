"""One-shot tool commands: code, scrape, research, extract, batch, instructions."""

from __future__ import annotations

import json
from pathlib import Path

from workbench.config import Config
from workbench.errors import WorkbenchError
from workbench.models import ExportFormat
from workbench.services.api_client import ApiClient
from workbench.services.jobs import export_data, wait_for_job

CODE_ACTIONS = ("generate", "review", "explain", "fix")

# Response field holding the text each code action produces
CODE_RESULT_FIELDS = {
    "generate": "content",
    "review": "review",
    "explain": "explanation",
    "fix": "result",
}


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _read_source(file_path: str) -> str | None:
    path = Path(file_path)
    if not path.is_file():
        print(f"No such file: {file_path}")
        return None
    return path.read_text(encoding="utf-8")


async def code(
    config: Config,
    action: str,
    source: str,
    language: str = "python",
    focus: str | None = None,
    level: str | None = None,
    error: str | None = None,
) -> bool:
    """
    Run a code assistant action.

    `source` is the description for generate, otherwise a path to the code.
    """
    if action == "generate":
        text = source
    else:
        text = _read_source(source)
        if text is None:
            return False

    async with ApiClient(config) as api:
        try:
            if action == "generate":
                result = await api.generate_code(text, language=language)
            elif action == "review":
                result = await api.review_code(text, language=language, focus=focus)
            elif action == "explain":
                result = await api.explain_code(text, language=language, level=level or "beginner")
            else:
                result = await api.fix_code(text, error or "", language=language)
        except WorkbenchError as e:
            print(f"Code {action} failed: {e}")
            return False

    output = result.get(CODE_RESULT_FIELDS[action])
    if output is None:
        _print_json(result)
    else:
        print(output)
    if result.get("provider"):
        print()
        print(f"({result['provider']} / {result.get('model') or 'unknown model'})")
    return True


async def scrape(config: Config, url: str) -> bool:
    async with ApiClient(config) as api:
        try:
            result = await api.scrape_url(url)
        except WorkbenchError as e:
            print(f"Scrape failed: {e}")
            return False
    _print_json(result)
    return True


async def research(config: Config, query: str, urls: list[str], file_path: str | None = None) -> bool:
    """Research a topic. A --file document is uploaded first and its text appended to the query."""
    path = Path(file_path) if file_path else None
    if path is not None and not path.is_file():
        print(f"No such file: {file_path}")
        return False

    async with ApiClient(config) as api:
        try:
            if path is not None:
                document = await api.upload_research_file(path)
                print(f"Uploaded {path.name} ({document.get('word_count', '?')} words)")
                query = f"{query}\n\nDocument Content:\n{document.get('content', '')}"
            result = await api.research_topic(query, urls=urls or None)
        except WorkbenchError as e:
            print(f"Research failed: {e}")
            return False

    print(result.get("synthesis", ""))
    sources = result.get("sources") or []
    if sources:
        print()
        print("Sources:")
        for i, source in enumerate(sources, 1):
            print(f"  {i}. {source.get('title') or source.get('url')}")
            print(f"     {source.get('url')}")
    return True


def _print_instruction_result(outcome: dict) -> None:
    confidence = outcome.get("confidence")
    state = "ok" if outcome.get("success") else "failed"
    if confidence is not None:
        print(f"Instruction {state} ({confidence * 100:.0f}% confidence)")
    else:
        print(f"Instruction {state}")
    for rule in outcome.get("transformation_rules") or []:
        print(f"  {rule.get('operation')}: {rule.get('description')}")
    if outcome.get("explanation"):
        print(outcome["explanation"])


async def extract(
    config: Config,
    file_path: str,
    instruction: str | None = None,
    preview: bool = False,
    export_format: ExportFormat | None = None,
    directory: Path | None = None,
) -> bool:
    """
    Upload a document; if the backend queues a job, poll until it is done.

    An instruction transforms the extracted data (or, with preview, only
    reports what it would do). An export format writes the final data to
    `directory`.
    """
    path = Path(file_path)
    if not path.is_file():
        print(f"No such file: {file_path}")
        return False

    async with ApiClient(config) as api:
        try:
            result = await api.extract_data(path)
            job_id = result.get("job_id")
            if job_id:
                print(f"Processing job {job_id}...", flush=True)
                status = await wait_for_job(api.processing_status, job_id)
                result = status.get("result", status)

            if instruction:
                if preview:
                    outcome = await api.preview_instruction(instruction, result)
                else:
                    outcome = await api.process_instruction(instruction, result)
                    result = outcome.get("transformed_data") or result
                _print_instruction_result(outcome)
        except WorkbenchError as e:
            print(f"Extraction failed: {e}")
            return False

        _print_json(result)

        if export_format:
            try:
                exported = await export_data(api, result, export_format, directory or Path.cwd())
            except (WorkbenchError, ValueError) as e:
                print(f"Export failed: {e}")
                return False
            print(f"Exported {export_format} to {exported}")

    return True


async def instructions(config: Config) -> bool:
    """Print example instructions the backend understands."""
    async with ApiClient(config) as api:
        try:
            examples = await api.instruction_examples()
        except WorkbenchError as e:
            print(f"Could not load examples: {e}")
            return False

    if isinstance(examples, dict):
        examples = examples.get("examples", examples)
    if isinstance(examples, list):
        for example in examples:
            if isinstance(example, dict):
                print(f"  - {example.get('instruction') or example.get('example') or json.dumps(example)}")
            else:
                print(f"  - {example}")
    else:
        _print_json(examples)
    return True


async def batch(config: Config, file_paths: list[str], name: str | None) -> bool:
    """Upload files as one batch and report progress until it finishes."""
    paths = [Path(p) for p in file_paths]
    missing = [str(p) for p in paths if not p.is_file()]
    if missing:
        print(f"No such file: {', '.join(missing)}")
        return False

    batch_name = name or f"Batch of {len(paths)} files"

    def show(status: dict) -> None:
        done = status.get("processed_files", status.get("completed_files", "?"))
        total = status.get("total_files", len(paths))
        print(f"  {status.get('status', 'unknown')}: {done}/{total}", flush=True)

    async with ApiClient(config) as api:
        try:
            job = await api.batch_upload(paths, batch_name)
            job_id = job["batch_job_id"]
            print(f"Batch {job_id} queued ({len(paths)} files)")
            status = await wait_for_job(api.batch_status, job_id, on_status=show)
        except WorkbenchError as e:
            print(f"Batch failed: {e}")
            return False

    _print_json(status)
    return True
