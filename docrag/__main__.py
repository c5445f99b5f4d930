"""
Command line entry point.

    python -m docrag ingest ./handbook.pdf --file-id handbook
    python -m docrag query "Give me an overview of chapter 2" --file-id handbook
    python -m docrag chunks handbook
    python -m docrag delete handbook
"""

from pathlib import Path
import argparse
import json
import logging
import mimetypes
import sys

from docrag.core.config_manager import ConfigManager
from docrag.core.exceptions import DocRAGError
from docrag.core.services.document_service import DocumentService
from docrag.models.metadata_models import RetrievalOptions

logger = logging.getLogger("docrag")

EXTENSION_MIME_TYPES = {
    '.md': 'text/markdown',
    '.markdown': 'text/markdown',
    '.csv': 'text/csv',
    '.txt': 'text/plain',
    '.pdf': 'application/pdf',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}


def guess_mime_type(path: Path) -> str:
    mime = EXTENSION_MIME_TYPES.get(path.suffix.lower())
    if mime is None:
        mime, _ = mimetypes.guess_type(path.name)
    return mime or 'application/octet-stream'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docrag", description="Document ingestion and retrieval")
    parser.add_argument("--config-dir", default="configs", help="Directory holding global_config.yaml")
    parser.add_argument("--profile", default=None, help="Profile in <config-dir>/profiles to merge")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Extract, chunk, embed and store a document")
    ingest.add_argument("path", type=Path)
    ingest.add_argument("--file-id", default=None, help="Defaults to the file name without extension")
    ingest.add_argument("--mime-type", default=None, help="Defaults to a guess from the extension")
    ingest.add_argument("--project-id", default=None)

    query = sub.add_parser("query", help="Retrieve context for a question")
    query.add_argument("question")
    query.add_argument("--file-id", action="append", required=True, dest="file_ids")
    query.add_argument("-n", "--n-results", type=int, default=None)
    query.add_argument("--no-rerank", action="store_true")
    query.add_argument("--no-smart", action="store_true", help="Disable overview retrieval")
    query.add_argument("--multi-query", action="store_true")
    query.add_argument("--context", action="store_true", help="Print the formatted LLM context")

    chunks = sub.add_parser("chunks", help="List the stored chunks of a file")
    chunks.add_argument("file_id")

    delete = sub.add_parser("delete", help="Delete a file's collection")
    delete.add_argument("file_id")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    config = ConfigManager(config_dir=args.config_dir).load_config(args.profile)
    service = DocumentService(config=config)

    try:
        if args.command == "ingest":
            result = service.ingest_document(
                file_id=args.file_id or args.path.stem,
                file_name=args.path.name,
                mime_type=args.mime_type or guess_mime_type(args.path),
                data=args.path.read_bytes(),
                project_id=args.project_id,
            )
            print(result.model_dump_json(indent=2))

        elif args.command == "query":
            options = RetrievalOptions(
                rerank_results=not args.no_rerank,
                enable_smart_retrieval=not args.no_smart,
            )
            if args.context:
                context, metrics = service.build_context(
                    args.question, args.file_ids, args.n_results, options, multi_query=args.multi_query
                )
                print(context or "(no context)")
                print(json.dumps(metrics, indent=2), file=sys.stderr)
            else:
                result = service.query_documents(
                    args.question, args.file_ids, args.n_results, options, multi_query=args.multi_query
                )
                for rank, chunk in enumerate(result.chunks, start=1):
                    print(
                        f"{rank:>2}. {chunk.metadata.file_name or chunk.file_id} "
                        f"#{chunk.chunk_index} distance={chunk.distance:.3f} source={chunk.source.value}"
                    )
                    print(f"    {chunk.document[:200]!r}")
                print(
                    f"\n{result.query_type.value} query: {len(result.chunks)} of "
                    f"{result.total_chunks} candidates from {len(result.files_queried)} files"
                )

        elif args.command == "chunks":
            for record in service.get_file_chunks(args.file_id):
                print(f"[{record.metadata.chunk_index}] {record.text[:120]!r}")

        elif args.command == "delete":
            service.delete_file(args.file_id)

    except DocRAGError as e:
        logger.error(str(e))
        return 1
    finally:
        service.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
