from __future__ import annotations

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.widgets import Button, Footer, Header, Input, Label, Select, Static

from .config import CONFIG_PATH, ConfigError, library_dir, load_config, save_config, validate_config
from .models import Config, ExportFormat


class SettingsApp(App):
    CSS = """
    Screen {
        align: center middle;
    }

    #settings-container {
        width: 80;
        height: auto;
        border: solid $primary;
        background: $surface;
        padding: 1 2;
    }

    .section-title {
        text-style: bold;
        color: $accent;
        margin: 1 0;
    }

    .field-row {
        height: 3;
        margin: 0 0 0 2;
    }

    .field-label {
        width: 20;
        content-align: left middle;
    }

    .field-input {
        width: 45;
    }

    #button-container {
        height: 3;
        margin: 1 0 0 0;
        align: center middle;
    }

    Button {
        margin: 0 1;
    }
    """

    BINDINGS = [
        Binding("ctrl+s", "save", "Save"),
        Binding("escape", "cancel", "Cancel"),
        Binding("ctrl+c", "quit", "Quit"),
    ]

    def __init__(self, config: Config | None = None):
        super().__init__()
        self.config = config or load_config()

    def _input_row(self, label: str, field_id: str, value: str, placeholder: str = "", password: bool = False):
        with Horizontal(classes="field-row"):
            yield Label(label, classes="field-label")
            yield Input(
                value=value,
                placeholder=placeholder,
                password=password,
                id=field_id,
                classes="field-input",
            )

    def compose(self) -> ComposeResult:
        yield Header()

        with Container(id="settings-container"):
            yield Static("chatkeeper Settings", classes="section-title")

            yield Static("Storage", classes="section-title")
            yield from self._input_row("Library dir:", "library_dir", str(library_dir(self.config)))
            yield from self._input_row(
                "Mirror dir:", "mirror_dir", self.config.mirror_dir or "", placeholder="~/Dropbox/AIChatTranscripts"
            )

            yield Static("Transcripts", classes="section-title")
            with Horizontal(classes="field-row"):
                yield Label("Format:", classes="field-label")
                yield Select(
                    options=[
                        ("Plain text", ExportFormat.PLAINTEXT.value),
                        ("Markdown", ExportFormat.MARKDOWN.value),
                        ("PDF (plain text)", ExportFormat.PDF.value),
                    ],
                    value=self.config.export_format,
                    id="export_format",
                    allow_blank=False,
                )
            yield from self._input_row("Platform:", "source_platform", self.config.source_platform)

            yield Static("Publication", classes="section-title")
            yield from self._input_row(
                "GitHub token:", "github_token", self.config.github_token or "", placeholder="ghp_...", password=True
            )
            yield from self._input_row(
                "Webhook URL:", "webhook_url", self.config.webhook_url or "", placeholder="https://"
            )

            with Horizontal(id="button-container"):
                yield Button("Save", variant="primary", id="save-button")
                yield Button("Cancel", variant="default", id="cancel-button")

        yield Footer()

    def action_save(self) -> None:
        self.save_settings()

    def action_cancel(self) -> None:
        self.exit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "save-button":
            self.save_settings()
        elif event.button.id == "cancel-button":
            self.exit()

    def _value(self, field_id: str) -> str:
        return self.query_one(f"#{field_id}", Input).value.strip()

    def save_settings(self) -> None:
        self.config.library_dir = self._value("library_dir") or None
        self.config.mirror_dir = self._value("mirror_dir") or None
        self.config.export_format = str(self.query_one("#export_format", Select).value)
        self.config.source_platform = self._value("source_platform") or "ChatGPT"
        self.config.github_token = self._value("github_token") or None
        self.config.webhook_url = self._value("webhook_url") or None

        try:
            validate_config(self.config)
            save_config(self.config)
        except (ConfigError, OSError) as exc:
            self.notify(f"Failed to save settings: {exc}", severity="error")
            return
        self.notify(f"Settings saved to {CONFIG_PATH}", severity="information")
        self.exit()


def show_settings_ui() -> None:
    app = SettingsApp()
    app.run()
