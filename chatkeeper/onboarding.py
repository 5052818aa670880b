from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from .config import CONFIG_PATH, library_dir, save_config, validate_config
from .models import Config, ExportFormat


def run_onboarding() -> Config:
    console = Console()

    console.clear()

    welcome_text = Text()
    welcome_text.append("Welcome to chatkeeper!\n\n", style="bold cyan")
    welcome_text.append("Keep AI chat transcripts with a verifiable chain of custody\n", style="dim")

    console.print(Panel(welcome_text, border_style="cyan", expand=False))
    console.print()

    config = Config()

    console.print("[bold]Storage[/bold]")
    console.print()
    console.print("Where should transcript files be saved?")
    config.library_dir = Prompt.ask("Library directory", default=str(library_dir(config)))

    console.print()
    console.print("Optional mirror directory inside a cloud-synced folder (iCloud Drive, Dropbox, ...).")
    console.print("Leave empty to skip.")
    mirror = Prompt.ask("Mirror directory", default="")
    config.mirror_dir = mirror or None

    console.print()
    console.print("[bold]Transcripts[/bold]")
    console.print()
    console.print("Default file format for saved transcripts:")
    console.print("  1. Plain text (recommended)")
    console.print("  2. Markdown")
    console.print("  3. PDF extension (written as plain text)")
    console.print()

    format_choice = Prompt.ask("Select option", choices=["1", "2", "3"], default="1")
    config.export_format = {
        "1": ExportFormat.PLAINTEXT,
        "2": ExportFormat.MARKDOWN,
        "3": ExportFormat.PDF,
    }[format_choice].value

    config.source_platform = Prompt.ask("Default source platform", default=config.source_platform)

    console.print()
    console.print("[bold]Hash Publication[/bold]")
    console.print()
    console.print("A GitHub token lets you publish hashes as public gists.")
    console.print("(Create one with the 'gist' scope at https://github.com/settings/tokens)")
    token = Prompt.ask("GitHub token", password=True, default="")
    config.github_token = token or None

    webhook = Prompt.ask("Default webhook URL", default="")
    config.webhook_url = webhook or None

    validate_config(config)

    console.print()
    console.print("[bold green]Setup Complete![/bold green]")
    console.print()

    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column(style="cyan")
    summary.add_column()

    summary.add_row("Library:", config.library_dir)
    summary.add_row("Mirror:", config.mirror_dir or "-")
    summary.add_row("Format:", config.export_format)
    summary.add_row("Platform:", config.source_platform)
    summary.add_row("GitHub token:", "set" if config.github_token else "-")
    summary.add_row("Webhook:", config.webhook_url or "-")

    console.print(Panel(summary, title="Your Configuration", border_style="green"))
    console.print()

    if Confirm.ask("Save this configuration?", default=True):
        save_config(config)
        console.print("[green]Configuration saved to[/green]", CONFIG_PATH)
        console.print()
        console.print("[bold]To import a transcript, run:[/bold]")
        console.print("  [cyan]chatkeeper import <transcript.txt>[/cyan]")
        console.print()
        return config

    console.print("[yellow]Configuration not saved. Run 'chatkeeper setup' to try again.[/yellow]")
    return config
