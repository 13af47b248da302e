from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from deskmate.config import get_settings
from deskmate.controllers.documents import DEFAULT_CATEGORY, DocumentStoreController
from deskmate.controllers.model_download import ModelState
from deskmate.doctor import run_doctor
from deskmate.logging import configure_logging
from deskmate.services import AppContext, build_context

app = typer.Typer(help="deskmate - your local AI desktop assistant")
kb_app = typer.Typer(help="Manage the knowledge base")
model_app = typer.Typer(help="Manage the speech recognition model")
app.add_typer(kb_app, name="kb")
app.add_typer(model_app, name="model")
console = Console()


@app.callback()
def main(
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines"),
) -> None:
    settings = get_settings()
    configure_logging(log_level or settings.log_level, use_json=json_logs or settings.log_json)


async def _open_kb(ctx: AppContext) -> DocumentStoreController:
    await ctx.documents.init()
    if ctx.documents.last_error:
        console.print(f"[red]knowledge base unavailable:[/red] {ctx.documents.last_error}")
        raise typer.Exit(code=2)
    return ctx.documents


@app.command()
def doctor() -> None:
    """Check local runtime prerequisites."""

    checks = run_doctor(get_settings())

    table = Table(title="deskmate doctor")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Detail")

    failed = False
    for check in checks:
        color = {"ok": "green", "warn": "yellow", "fail": "red"}.get(check.status, "white")
        table.add_row(check.name, f"[{color}]{check.status.upper()}[/{color}]", check.detail)
        if check.status == "fail":
            failed = True

    console.print(table)
    if failed:
        raise typer.Exit(code=1)


@app.command()
def chat() -> None:
    """Chat with the assistant. Commands: /new, /list, /switch N, /quit."""

    async def run() -> None:
        ctx = build_context()
        await ctx.documents.init()
        manager = ctx.conversations
        while True:
            try:
                text = await asyncio.to_thread(console.input, "[bold]> [/bold]")
            except EOFError:
                return
            command = text.strip()
            if command in {"/quit", "/exit"}:
                return
            if command == "/new":
                manager.start_new_chat()
                console.print("[yellow]New chat.[/yellow]")
                continue
            if command == "/list":
                for index, conversation in enumerate(manager.conversations, start=1):
                    marker = "*" if conversation.id == manager.active_id else " "
                    console.print(f"{marker} {index}. {conversation.title} ({conversation.created_at})")
                continue
            if command.startswith("/switch"):
                _, _, raw_index = command.partition(" ")
                if not raw_index.strip().isdigit() or not 0 < int(raw_index) <= len(manager.conversations):
                    console.print("[red]usage:[/red] /switch N (see /list)")
                    continue
                manager.switch_conversation(manager.conversations[int(raw_index) - 1])
                console.print("[yellow]Switched; earlier messages are not restored.[/yellow]")
                continue

            before = len(manager.messages)
            with console.status("Thinking..."):
                await manager.send(text)
            for message in manager.messages[before + 1 :]:
                color = "red" if message.role == "system" else "cyan"
                console.print(f"[{color}]{message.role}:[/{color}] {message.content}")

    asyncio.run(run())


@kb_app.command("list")
def kb_list() -> None:
    """List documents in the knowledge base."""

    async def run() -> None:
        documents = await _open_kb(build_context())
        if not documents.documents:
            console.print("[yellow]Knowledge base is empty.[/yellow]")
            return
        table = Table(title="Documents")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Category")
        table.add_column("Created")
        for document in documents.documents:
            table.add_row(document.id, document.name, document.category, document.created_at)
        console.print(table)

    asyncio.run(run())


@kb_app.command("add")
def kb_add(
    file_path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    category: str = typer.Option(DEFAULT_CATEGORY, "--category"),
) -> None:
    """Add a text, .docx or .pdf document to the knowledge base."""

    async def run() -> None:
        documents = await _open_kb(build_context())
        before = len(documents.documents)
        try:
            await documents.add(str(file_path.resolve()), None, category)
        except RuntimeError as exc:
            console.print(f"[red]add failed:[/red] {exc}")
            raise typer.Exit(code=2) from exc
        console.print(f"[green]Added:[/green] {file_path.name} ({before} -> {len(documents.documents)} documents)")

    asyncio.run(run())


@kb_app.command("remove")
def kb_remove(document_id: str = typer.Argument(..., help="Document ID")) -> None:
    """Delete a document by ID."""

    async def run() -> None:
        documents = await _open_kb(build_context())
        if not await documents.remove(document_id):
            console.print(f"[red]remove failed:[/red] {documents.last_error}")
            raise typer.Exit(code=2)
        console.print(f"[green]Removed:[/green] {document_id}")
        if documents.refresh_error:
            console.print(f"[yellow]document list not refreshed:[/yellow] {documents.refresh_error}")

    asyncio.run(run())


@kb_app.command("search")
def kb_search(query: str = typer.Argument(..., help="Search text")) -> None:
    """Search the knowledge base."""

    async def run() -> None:
        documents = await _open_kb(build_context())
        await documents.search(query)
        if not documents.search_results:
            console.print("[yellow]No matches found.[/yellow]")
            return
        table = Table(title="Search results")
        table.add_column("Relevance")
        table.add_column("Document")
        table.add_column("Snippet")
        for result in documents.search_results:
            table.add_row(f"{result.relevance:.2f}", result.document.name, result.snippet)
        console.print(table)

    asyncio.run(run())


@model_app.command("check")
def model_check() -> None:
    """Show whether the speech model is installed."""

    async def run() -> None:
        tracker = build_context().model
        await tracker.check_model()
        if tracker.status is None:
            console.print(f"[red]check failed:[/red] {tracker.error}")
            raise typer.Exit(code=2)
        status = tracker.status
        state = "[green]installed[/green]" if status.is_installed else "[yellow]not installed[/yellow]"
        console.print(f"{status.name}: {state}")
        console.print(f"{status.description} (~{status.size_mb} MB)")
        console.print(f"Directory: {status.model_dir}")

    asyncio.run(run())


@model_app.command("download")
def model_download() -> None:
    """Download the speech model, showing per-file progress."""

    async def run() -> None:
        with build_context().model as tracker:
            await tracker.check_model()
            if tracker.state is ModelState.INSTALLED:
                console.print("[green]Speech model already installed.[/green]")
                return

            progress = Progress(TextColumn("{task.description}"), BarColumn(), TextColumn("{task.fields[detail]}"))
            with progress:
                task_id = progress.add_task("starting", total=100, detail="")
                download = asyncio.create_task(tracker.download_model())
                while not download.done():
                    progress.update(
                        task_id,
                        description=tracker.current_file or "starting",
                        completed=tracker.percent,
                        detail=tracker.byte_label or f"{tracker.percent}%",
                    )
                    await asyncio.sleep(0.1)
                await download
                if tracker.pending_probe is not None:
                    await tracker.pending_probe

        if tracker.state is ModelState.INSTALLED:
            console.print("[green]Speech model installed.[/green]")
            return
        console.print(f"[red]download failed:[/red] {tracker.error or 'model files incomplete'}")
        raise typer.Exit(code=2)

    asyncio.run(run())


@app.command()
def transcribe(
    media_path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    edit: bool = typer.Option(False, "--edit", help="Review the transcript in $EDITOR first"),
    commit: bool = typer.Option(False, "--commit", help="Save the transcript to the knowledge base"),
) -> None:
    """Transcribe a video or audio file, optionally saving it as a document."""

    async def run() -> None:
        ctx = build_context()
        workflow = ctx.transcription
        workflow.open()
        with console.status(f"Transcribing {media_path.name}..."):
            await workflow.select(media_path.resolve())
        if workflow.error:
            console.print(f"[red]{workflow.error}[/red]")
            raise typer.Exit(code=2)

        if edit:
            edited = typer.edit(workflow.transcript)
            if edited is not None:
                workflow.edit(edited)
        console.print(workflow.transcript)

        if not commit:
            return
        if not workflow.can_commit:
            console.print("[yellow]Transcript is empty; nothing to save.[/yellow]")
            raise typer.Exit(code=2)
        await _open_kb(ctx)
        if not await workflow.commit():
            console.print(f"[red]save failed:[/red] {workflow.error}")
            raise typer.Exit(code=2)
        console.print("[green]Transcript saved to the knowledge base.[/green]")

    asyncio.run(run())


if __name__ == "__main__":
    app()
