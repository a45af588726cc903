"""Test module for main.py functionality."""

from unittest.mock import patch

import pytest

from fotos_sync.database.models import Collection
from fotos_sync.main import FotosApp, parse_arguments, run_command


@pytest.fixture
def app(config):
    fotos = FotosApp(config, emit=lambda event: None, is_online=lambda: False)
    fotos.startup()
    yield fotos
    fotos.shutdown()


def test_main_help(capsys):
    """Test that the main help message is displayed correctly."""
    with pytest.raises(SystemExit) as exc_info:
        with patch("sys.argv", ["script_name", "-h"]):
            parse_arguments()

    assert exc_info.value.code == 0
    help_output = capsys.readouterr().out

    assert "fotos-sync" in help_output
    assert "--data-dir" in help_output
    assert "--verbose" in help_output
    for cmd in {"serve", "albums", "photos", "sync", "queue", "login", "logout"}:
        assert cmd in help_output


@pytest.mark.parametrize("command", ["serve", "albums", "photos", "login"])
def test_subcommand_help(command, capsys):
    """Test that each subcommand's help message is displayed correctly."""
    with pytest.raises(SystemExit) as exc_info:
        parse_arguments([command, "-h"])

    assert exc_info.value.code == 0
    assert command in capsys.readouterr().out


def test_parse_serve_arguments():
    """Test parsing of the serve command."""
    args = parse_arguments(["--data-dir", "/tmp/fotos", "serve", "Wedding", "/srv/ftp", "--cloud-sync"])

    assert args.data_dir == "/tmp/fotos"
    assert args.command == "serve"
    assert args.album == "Wedding"
    assert args.directory == "/srv/ftp"
    assert args.username == "camera"
    assert args.cloud_sync


def test_command_is_required():
    """Test that a missing command is an error."""
    with pytest.raises(SystemExit) as exc_info:
        parse_arguments([])
    assert exc_info.value.code == 2


def test_startup_creates_data_files(app, config):
    """Test that startup prepares the data directory and password file."""
    assert app.store.read_all(Collection.ALBUMS) == []
    assert app.ftp.password == config.default_ftp_password


def test_album_commands(app, capsys):
    """Test creating and listing albums offline."""
    assert run_command(app, parse_arguments(["albums", "create", "Wedding", "2024-06-01"])) == 0
    assert run_command(app, parse_arguments(["albums", "list"])) == 0
    assert "Wedding" in capsys.readouterr().out

    assert run_command(app, parse_arguments(["queue"])) == 0
    assert "create" in capsys.readouterr().out


def test_sync_command_offline(app, capsys):
    """Test that an offline drain reports failure and keeps the queue."""
    run_command(app, parse_arguments(["albums", "create", "Wedding", "2024-06-01"]))

    assert run_command(app, parse_arguments(["sync"])) == 1
    assert "Offline, sync queued" in capsys.readouterr().err
    assert len(app.store.load_queue()) == 1


def test_serve_requires_album(app, capsys, tmp_path):
    """Test that serving an unknown album fails before starting FTP."""
    assert run_command(app, parse_arguments(["serve", "Nope", str(tmp_path)])) == 1
    assert "no album named" in capsys.readouterr().err
    assert not app.ftp.is_running
