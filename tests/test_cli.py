import json

from typer.testing import CliRunner

from chatkeeper import config
from chatkeeper.cli import app
from chatkeeper.hashing import sha256_hex
from chatkeeper.storage import Storage

runner = CliRunner()


def _configure(home):
    config.update_config(library_dir=str(home / "library"))


def _import(home, text="User: hi\nAssistant: hello\n"):
    source = home / "chat.txt"
    source.write_text(text, encoding="utf-8")
    result = runner.invoke(app, ["import", str(source), "--title", "Chat", "--platform", "Claude"])
    assert result.exit_code == 0, result.output
    return Storage().list_records()[0]


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "chatkeeper v" in result.output


def test_import_list_and_show(isolated_home):
    _configure(isolated_home)
    record = _import(isolated_home)

    assert record.current_hash == sha256_hex("User: hi\nAssistant: hello\n")
    assert (isolated_home / "library").is_dir()

    listing = runner.invoke(app, ["list"])
    assert listing.exit_code == 0
    assert record.id[:8] in listing.output
    assert "Chat" in listing.output

    shown = runner.invoke(app, ["show", record.id[:8], "--no-content"])
    assert shown.exit_code == 0
    assert f"SHA-256: {record.current_hash}" in shown.output
    assert "Custody entries: 2" in shown.output


def test_import_from_stdin(isolated_home):
    _configure(isolated_home)
    result = runner.invoke(app, ["import", "--title", "Piped"], input="pasted transcript\n")
    assert result.exit_code == 0, result.output
    assert Storage().list_records()[0].title == "Piped"


def test_import_rejects_empty_transcript(isolated_home):
    _configure(isolated_home)
    result = runner.invoke(app, ["import"], input="   \n")
    assert result.exit_code == 1
    assert Storage().list_records() == []


def test_verify_exit_codes(isolated_home):
    _configure(isolated_home)
    record = _import(isolated_home)

    ok = runner.invoke(app, ["verify", record.id])
    assert ok.exit_code == 0
    assert "File integrity verified" in ok.output

    with open(record.local_file_path, "a", encoding="utf-8") as fh:
        fh.write("tampered")
    bad = runner.invoke(app, ["verify", record.id])
    assert bad.exit_code == 1

    history = runner.invoke(app, ["history", record.id])
    assert "Verified" in history.output
    assert "Modified" in history.output


def test_report_to_file(isolated_home):
    _configure(isolated_home)
    record = _import(isolated_home)
    output = isolated_home / "report.txt"

    result = runner.invoke(app, ["report", record.id, "--output", str(output)])

    assert result.exit_code == 0
    text = output.read_text(encoding="utf-8")
    assert "CHAIN OF CUSTODY REPORT" in text
    assert "[2] Hashed" in text


def test_publish_gist_without_token_fails(isolated_home):
    _configure(isolated_home)
    record = _import(isolated_home)

    result = runner.invoke(app, ["publish", record.id, "--service", "gist"])
    assert result.exit_code == 1

    unknown = runner.invoke(app, ["publish", record.id, "--service", "carrier-pigeon"])
    assert unknown.exit_code == 1


def test_delete_and_missing_record(isolated_home):
    _configure(isolated_home)
    record = _import(isolated_home)

    assert runner.invoke(app, ["delete", record.id]).exit_code == 0
    assert Storage().list_records() == []
    assert runner.invoke(app, ["show", record.id]).exit_code == 1


def test_backup_to_locations(isolated_home):
    _configure(isolated_home)
    record = _import(isolated_home)
    target = isolated_home / "usb"

    added = runner.invoke(app, ["locations", "add", "USB", str(target), "--type", "external"])
    assert added.exit_code == 0, added.output
    listing = runner.invoke(app, ["locations", "list"])
    assert "External Drive" in listing.output

    result = runner.invoke(app, ["backup", record.id, "--locations"])
    assert result.exit_code == 0, result.output
    assert (target / f"Chat_{record.id}.txt").exists()

    assert runner.invoke(app, ["backup", record.id, "--mirror"]).exit_code == 1
    assert runner.invoke(app, ["backup", record.id]).exit_code == 1


def test_config_show_and_update(isolated_home):
    result = runner.invoke(app, ["config", "--export-format", "markdown"])
    assert result.exit_code == 0
    shown = runner.invoke(app, ["config", "--show"])
    assert json.loads(shown.output)["export_format"] == "markdown"

    assert runner.invoke(app, ["config", "--export-format", "docx"]).exit_code == 1


def test_unusable_record_store_is_fatal(isolated_home, monkeypatch):
    from chatkeeper import storage as storage_mod

    blocker = isolated_home / "blocker"
    blocker.write_text("not a directory")
    monkeypatch.setattr(storage_mod, "DB_PATH", blocker / "records.db")

    result = runner.invoke(app, ["list"])
    assert result.exit_code == 2


def test_import_rejects_non_utf8_file(isolated_home):
    _configure(isolated_home)
    source = isolated_home / "latin1.txt"
    source.write_bytes(b"caf\xe9 transcript")

    result = runner.invoke(app, ["import", str(source)])

    assert result.exit_code == 1
    assert not isinstance(result.exception, UnicodeDecodeError)
    assert "UTF-8" in result.output
    assert Storage().list_records() == []


def test_invalid_config_file_is_reported(isolated_home):
    source = isolated_home / "chat.txt"
    source.write_text("User: hi\n", encoding="utf-8")
    (isolated_home / "config.json").write_text(json.dumps({"export_format": "docx"}))

    result = runner.invoke(app, ["import", str(source)])

    assert result.exit_code == 1
    assert not isinstance(result.exception, ValueError)
    assert "Invalid export format" in result.output


def test_locations_accept_listed_id(isolated_home):
    _configure(isolated_home)
    runner.invoke(app, ["locations", "add", "USB", str(isolated_home / "usb"), "--type", "external"])
    listing = runner.invoke(app, ["locations", "list"])
    row = next(line for line in listing.output.splitlines() if "USB" in line)
    shown_id = row.split()[0]

    result = runner.invoke(app, ["locations", "disable", shown_id])
    assert result.exit_code == 0, result.output
    assert Storage().list_locations()[0].enabled is False

    assert runner.invoke(app, ["locations", "remove", shown_id]).exit_code == 0
    assert Storage().list_locations() == []
