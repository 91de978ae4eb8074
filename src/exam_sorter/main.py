"""
Main CLI entry point for the exam sorter.

Usage:
    exam-sorter serve --port 8000
    exam-sorter split exams/*.pdf --labels labels.json --output problems/

The labels file for `split` is either a list aligned with the PDFs:

    [{"name": "Ada Lovelace", "labels": {"1": [1], "2": [2, 3], "3": [-1]}}, ...]

or an object keyed by PDF file name with the same entries.
"""

import argparse
import asyncio
import json
import sys
import tempfile
from pathlib import Path
from typing import Dict, List

from rich.console import Console
from rich.table import Table

from exam_sorter.config.constants import FINAL_FILENAME
from exam_sorter.config.settings import get_settings
from exam_sorter.core.exceptions import ExamSorterError, InvalidInputError
from exam_sorter.core.labels import LabelAssignment
from exam_sorter.core.models import StudentStatus
from exam_sorter.core.processor import BackgroundProcessor
from exam_sorter.core.status import build_status
from exam_sorter.export.finalizer import Finalizer
from exam_sorter.export.stamper import WatermarkStyle
from exam_sorter.storage.session_store import SessionStore


console = Console()

STATUS_STYLES = {
    StudentStatus.PENDING: "dim",
    StudentStatus.PROCESSING: "yellow",
    StudentStatus.COMPLETED: "green",
    StudentStatus.ERROR: "bold red",
}


def load_label_entries(labels_path: Path, pdf_paths: List[Path]) -> List[Dict]:
    """
    Read the labels file and align its entries with the PDFs.

    Raises:
        InvalidInputError: If the file is unreadable or an entry is missing
    """
    try:
        data = json.loads(labels_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidInputError(f"Cannot read labels file {labels_path}: {e}")

    if isinstance(data, dict):
        missing = [p.name for p in pdf_paths if p.name not in data]
        if missing:
            raise InvalidInputError(f"No labels for: {', '.join(missing)}")
        return [data[p.name] for p in pdf_paths]

    if isinstance(data, list):
        if len(data) != len(pdf_paths):
            raise InvalidInputError(
                f"Labels file has {len(data)} entries for {len(pdf_paths)} PDFs"
            )
        return data

    raise InvalidInputError("Labels file must be a JSON list or object")


async def command_split(args) -> int:
    """Label, stamp and regroup a batch offline."""
    settings = get_settings()
    pdf_paths = [Path(p) for p in args.pdfs]
    entries = load_label_entries(Path(args.labels), pdf_paths)

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory(prefix="exam-sorter-") as work_dir:
        store = SessionStore(base_dir=work_dir, strict_uploads=settings.strict_uploads)
        processor = BackgroundProcessor(
            store,
            style=WatermarkStyle.from_settings(settings),
            max_workers=settings.stamp_workers
        )
        finalizer = Finalizer(store, processor, sort_pages=not args.no_sort)

        try:
            store.start_session(
                [p.read_bytes() for p in pdf_paths],
                [p.name for p in pdf_paths]
            )

            with console.status(f"Stamping {len(pdf_paths)} exams..."):
                for student_id, entry in enumerate(entries, start=1):
                    labels = LabelAssignment.from_wire(entry.get("labels", {}))
                    processor.submit(student_id, str(entry.get("name", "")).strip(), labels)
                await processor.wait_idle()

            problems = await finalizer.finalize()
            for problem in problems:
                path = output_dir / FINAL_FILENAME.format(problem=problem)
                path.write_bytes(store.get_final(problem))

            status = build_status(store, processor)
            _print_students(store)
        finally:
            await processor.shutdown()
            store.reset()

    console.print(
        f"[bold green]{len(problems)} problem PDFs[/bold green] written to {output_dir}"
    )
    if status.error_students:
        console.print(f"[bold red]{status.error_students} students failed[/bold red]")
        return 1
    return 0


def _print_students(store) -> None:
    table = Table(title="Students")
    table.add_column("#", justify="right")
    table.add_column("File")
    table.add_column("Name")
    table.add_column("Problems")
    table.add_column("Status")

    for student in store.list_students():
        style = STATUS_STYLES[student.status]
        status_text = student.status.value
        if student.error:
            status_text += f": {student.error}"
        table.add_row(
            str(student.id),
            student.filename or "",
            student.name,
            ", ".join(str(p) for p in student.labels.problems()),
            f"[{style}]{status_text}[/{style}]"
        )
    console.print(table)


def command_serve(args) -> int:
    """Start the API server."""
    import uvicorn

    from exam_sorter.api.app import create_app

    app = create_app()

    console.print("[bold green]Starting API server[/bold green]")
    console.print(f"Host: {args.host}")
    console.print(f"Port: {args.port}")
    console.print(f"Docs: http://{args.host}:{args.port}/docs")

    # Single worker: the session lives in this process's memory
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Exam Sorter - split student exams into one PDF per problem",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s serve
  %(prog)s serve --host 0.0.0.0 --port 8080
  %(prog)s split exams/*.pdf --labels labels.json --output problems/
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")

    split_parser = subparsers.add_parser("split", help="Split a labeled batch offline")
    split_parser.add_argument("pdfs", nargs="+", help="Student PDFs, in student order")
    split_parser.add_argument("--labels", required=True, help="JSON file with names and page labels")
    split_parser.add_argument("--output", default="problems", help="Output directory")
    split_parser.add_argument(
        "--no-sort",
        action="store_true",
        help="Keep pages in filing order instead of sorting by student and page"
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "serve":
            return command_serve(args)
        elif args.command == "split":
            return asyncio.run(command_split(args))
    except ExamSorterError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
