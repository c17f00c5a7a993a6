from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from docchat import DocChat, DocChatConfigurationError, DocChatError, IngestionResult
from docchat.services.document_ingestion import DocumentIngestionError, parse_document
from docchat.services.pdf_ingestion import PdfIngestionError
from docchat.services.text_chunker import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, chunk_text

app = typer.Typer(add_completion=False, help="docchat CLI: ask questions about a document, offline.")

DocumentOption = Annotated[
    Path,
    typer.Option(
        "--file",
        "--doc",
        "--document",
        "--pdf",
        exists=True,
        readable=True,
        dir_okay=False,
        help="Document to load (PDF, DOCX or plain text).",
    ),
]
ModelOption = Annotated[
    str | None,
    typer.Option("--model", help="Embedding model (overrides DOCCHAT_EMBEDDING_MODEL)."),
]
ChunkSizeOption = Annotated[
    int | None,
    typer.Option("--chunk-size", min=1, help="Target characters per chunk."),
]
OverlapOption = Annotated[
    int | None,
    typer.Option("--overlap", min=0, help="Overlap hint in characters between chunks."),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable INFO logging.")]
JsonOption = Annotated[bool, typer.Option("--json", help="Emit JSON output.")]


def _print_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


def _build_client(
    *,
    model: str | None,
    chunk_size: int | None,
    overlap: int | None,
    top_k: int | None = None,
) -> DocChat:
    try:
        return DocChat(
            embedding_model=model,
            chunk_size=chunk_size,
            chunk_overlap=overlap,
            top_k=top_k,
        )
    except DocChatConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _report_progress(current: int, total: int) -> None:
    typer.echo(f"Embedding {current}/{total} chunks...", err=True)


def _load_document(client: DocChat, document: Path) -> IngestionResult:
    if not client.is_model_ready:
        typer.echo("Loading embedding model...", err=True)
    try:
        return client.ingest(document, on_progress=_report_progress)
    except DocChatError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _ingestion_payload(result: IngestionResult) -> dict[str, object]:
    return {
        "filename": result.filename,
        "mime_type": result.mime_type,
        "checksum_sha256": result.checksum_sha256,
        "page_count": result.page_count,
        "char_count": result.char_count,
        "chunk_count": result.chunk_count,
    }


@app.command()
def ask(
    prompt: Annotated[str, typer.Argument(help="Question to answer from the document.")],
    document: DocumentOption,
    model: ModelOption = None,
    chunk_size: ChunkSizeOption = None,
    overlap: OverlapOption = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", min=1, max=50, help="Chunks to retrieve (overrides DOCCHAT_TOP_K)."),
    ] = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Load a document and answer one question with text taken from it."""

    _configure_logging(verbose)
    client = _build_client(model=model, chunk_size=chunk_size, overlap=overlap, top_k=top_k)
    ingested = _load_document(client, document)

    try:
        result = client.ask(prompt)
    except DocChatError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if json_output:
        _print_json(
            {
                "ingested": _ingestion_payload(ingested),
                "prompt": result.prompt,
                "answer": result.answer,
                "sources": [
                    {
                        "chunk_index": r.chunk.chunk_index,
                        "page_number": r.chunk.page_number,
                        "score": r.score,
                        "text": r.chunk.text,
                    }
                    for r in result.results
                ],
            }
        )
        return

    typer.echo(result.answer)


@app.command()
def evaluate(
    answer: Annotated[str, typer.Argument(help="Answer to score.")],
    topic: Annotated[
        str,
        typer.Option("--topic", "-t", help="Question or topic the answer responds to."),
    ],
    document: DocumentOption,
    model: ModelOption = None,
    chunk_size: ChunkSizeOption = None,
    overlap: OverlapOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Score an answer against what the document says about a topic."""

    _configure_logging(verbose)
    client = _build_client(model=model, chunk_size=chunk_size, overlap=overlap)
    ingested = _load_document(client, document)

    try:
        result = client.evaluate(answer, topic)
    except DocChatError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if json_output:
        _print_json({"ingested": _ingestion_payload(ingested), **result.model_dump()})
        return

    typer.echo(f"Similarity: {result.similarity_percentage}%")
    typer.echo(result.justification)
    if result.missing_elements:
        typer.echo("\nMissing elements:")
        for element in result.missing_elements:
            typer.echo(f"  - {element}")
    if result.reference_excerpts:
        typer.echo("\nReference excerpts:")
        for idx, excerpt in enumerate(result.reference_excerpts, start=1):
            typer.echo(f"[{idx}] {excerpt}")


@app.command()
def chunks(
    document: DocumentOption,
    chunk_size: Annotated[
        int, typer.Option("--chunk-size", min=1, help="Target characters per chunk.")
    ] = DEFAULT_CHUNK_SIZE,
    overlap: Annotated[
        int, typer.Option("--overlap", min=0, help="Overlap hint in characters between chunks.")
    ] = DEFAULT_CHUNK_OVERLAP,
    json_output: JsonOption = False,
) -> None:
    """Show how a document is chunked (no embedding model needed)."""

    try:
        parsed = parse_document(document.read_bytes(), filename=document.name)
    except (DocumentIngestionError, PdfIngestionError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    result = chunk_text(parsed.text, chunk_size, overlap)

    if json_output:
        _print_json(
            [
                {
                    "chunk_index": chunk.chunk_index,
                    "page_number": chunk.page_number,
                    "char_count": len(chunk.text),
                    "text": chunk.text,
                }
                for chunk in result
            ]
        )
        return

    typer.echo(f"{len(result)} chunks from {len(parsed.text):,} characters")
    for chunk in result:
        preview = chunk.text[:80]
        typer.echo(f"[{chunk.chunk_index}] ({len(chunk.text)} chars) {preview}")


_EVALUATE_PREFIX = "evaluate "
_EVALUATE_SEPARATOR = "::"


@app.command()
def chat(
    document: DocumentOption,
    model: ModelOption = None,
    chunk_size: ChunkSizeOption = None,
    overlap: OverlapOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Interactive chat loop over one document."""

    _configure_logging(verbose)
    client = _build_client(model=model, chunk_size=chunk_size, overlap=overlap)
    ingested = _load_document(client, document)

    typer.echo(
        f"Loaded {ingested.filename}: {ingested.chunk_count} chunks, "
        f"{ingested.char_count:,} characters."
    )
    typer.echo(
        "Enter questions. Type 'clear' to reset the chat, "
        "'evaluate <topic> :: <answer>' to score an answer, 'exit' or 'quit' to leave."
    )

    while True:
        try:
            text = typer.prompt(">")
        except (EOFError, KeyboardInterrupt, typer.Abort):
            # click turns EOF on stdin into Abort.
            typer.echo("\nBye.")
            raise typer.Exit(code=0) from None

        command = text.strip()
        if command.lower() in {"exit", "quit"}:
            raise typer.Exit(code=0)
        if not command:
            continue
        if command.lower() == "clear":
            client.clear_chat()
            typer.echo("Chat cleared.")
            continue

        if command.lower().startswith(_EVALUATE_PREFIX) and _EVALUATE_SEPARATOR in command:
            topic, _, answer = command[len(_EVALUATE_PREFIX) :].partition(_EVALUATE_SEPARATOR)
            try:
                evaluation = client.evaluate(answer.strip(), topic.strip())
            except DocChatError as exc:
                typer.echo(f"An error occurred while evaluating the answer: {exc}", err=True)
                continue
            typer.echo(f"Similarity: {evaluation.similarity_percentage}%")
            typer.echo(evaluation.justification)
            typer.echo("")
            continue

        try:
            res = client.ask(command)
        except DocChatError as exc:
            typer.echo(f"An error occurred while processing your question: {exc}", err=True)
            continue
        typer.echo(res.answer)
        typer.echo("")


if __name__ == "__main__":
    app()
