"""Tests for CLI commands and argument parsing."""

import os
from unittest.mock import MagicMock, mock_open, patch

import pytest

from passvault.generator import ALPHABET
from passvault.main import copy_to_clipboard, get_password, main
from passvault.storage import STORES


@pytest.fixture
def cli(temp_vault_dir, passphrase):
    """Run the CLI against a temporary vault with the test passphrase."""
    vault = str(temp_vault_dir / "storage.json")

    def run(*argv, password=passphrase, storage="file"):
        args = ["--vault", vault, "--storage", storage]
        if password is not None:
            args += ["--password", password]
        main(args + list(argv))

    return run


def last_line(capsys):
    return capsys.readouterr().out.strip().splitlines()[-1]


class TestGetPassword:
    """Tests for get_password helper function."""

    def test_from_argument(self):
        assert get_password("argpass") == bytearray(b"argpass")

    def test_from_env(self):
        """Test that PASSVAULT_PASSWORD env var is used when set."""
        with patch.dict(os.environ, {"PASSVAULT_PASSWORD": "testpass123"}):
            assert get_password() == bytearray(b"testpass123")

    def test_argument_beats_env(self):
        with patch.dict(os.environ, {"PASSVAULT_PASSWORD": "envpass"}):
            assert get_password("argpass") == bytearray(b"argpass")

    @patch("passvault.main.getpass.getpass")
    def test_fallback_to_getpass(self, mock_getpass):
        """Test fallback to getpass when nothing else is set."""
        mock_getpass.return_value = "manualpass"
        result = get_password(prompt="Enter password: ")
        assert result == bytearray(b"manualpass")
        mock_getpass.assert_called_once_with("Enter password: ")

    @patch("passvault.main.getpass.getpass")
    def test_empty_env_uses_getpass(self, mock_getpass):
        """Test that empty env var falls back to getpass."""
        mock_getpass.return_value = "manualpass"
        with patch.dict(os.environ, {"PASSVAULT_PASSWORD": ""}):
            assert get_password() == bytearray(b"manualpass")


class TestCopyToClipboard:
    """Tests for copy_to_clipboard function."""

    @patch("passvault.main.subprocess.run")
    @patch("passvault.main.os.path.exists")
    @patch("builtins.open", mock_open(read_data="Linux version"))
    def test_linux(self, mock_exists, mock_run):
        """Test clipboard on Linux."""
        mock_exists.return_value = True
        mock_run.return_value = MagicMock(returncode=0)

        with patch.dict(os.environ, {}, clear=True):
            assert copy_to_clipboard("secret text") is True
        assert mock_run.call_args[0][0] == ["xclip", "-selection", "clipboard"]

    @patch("passvault.main.subprocess.run")
    @patch("passvault.main.os.path.exists")
    @patch("builtins.open", mock_open(read_data="Linux version microsoft-standard-WSL2"))
    def test_wsl(self, mock_exists, mock_run):
        mock_exists.return_value = True
        mock_run.return_value = MagicMock(returncode=0)

        copy_to_clipboard("secret text")
        assert mock_run.call_args[0][0] == ["clip.exe"]

    @patch("passvault.main.subprocess.run", side_effect=FileNotFoundError)
    @patch("passvault.main.os.path.exists", return_value=True)
    @patch("builtins.open", mock_open(read_data="Linux version"))
    def test_missing_tool_prints(self, mock_exists, mock_run, capsys):
        """Test the password is printed when no clipboard tool exists."""
        assert copy_to_clipboard("secret text") is False
        assert "secret text" in capsys.readouterr().out


class TestCmdAdd:
    """Tests for the add command."""

    def test_add_show(self, cli, capsys):
        """Test a generated password is printed with --show."""
        cli("add", "example.com", "alice", "--show")

        password = last_line(capsys)
        assert len(password) == 20
        assert set(password) <= set(ALPHABET)

    @patch("passvault.main.copy_to_clipboard", return_value=True)
    def test_add_copies_by_default(self, mock_copy, cli, capsys):
        cli("add", "example.com", "alice")

        mock_copy.assert_called_once()
        assert "Copied password for alice at example.com" in capsys.readouterr().out

    def test_add_existing(self, cli, capsys):
        """Test re-adding a pair reports it and succeeds."""
        cli("add", "example.com", "alice", "--show")
        cli("add", "example.com", "alice", "--show")

        assert last_line(capsys) == "alice at example.com already exists"

    @patch("passvault.main.getpass.getpass")
    def test_add_existing_does_not_prompt(self, mock_getpass, cli, capsys):
        """Test re-adding a pair never asks for the passphrase."""
        cli("add", "example.com", "alice", "--show")
        cli("add", "example.com", "alice", "--show", password=None)

        mock_getpass.assert_not_called()
        assert last_line(capsys) == "alice at example.com already exists"

    def test_add_wrong_password(self, cli, capsys):
        cli("add", "example.com", "alice", "--show")

        with pytest.raises(SystemExit) as exc:
            cli("add", "other.com", "bob", "--show", password="wrong")

        assert exc.value.code == 1
        assert "Invalid password" in capsys.readouterr().err

    def test_add_sqlite(self, cli, capsys):
        """Test the sqlite backend through the CLI."""
        cli("add", "example.com", "alice", "--show", storage="sqlite")
        password = last_line(capsys)

        cli("get", "example.com", "--show", storage="sqlite")
        assert last_line(capsys) == password


class TestCmdGet:
    """Tests for the get command."""

    def test_get_show(self, cli, capsys):
        cli("add", "example.com", "alice", "--show")
        password = last_line(capsys)

        cli("get", "example.com", "--show")
        assert last_line(capsys) == password

    def test_get_needs_username_when_ambiguous(self, cli, capsys):
        cli("add", "example.com", "alice", "--show")
        cli("add", "example.com", "bob", "--show")
        bob = last_line(capsys)

        with pytest.raises(SystemExit) as exc:
            cli("get", "example.com", "--show")
        assert exc.value.code == 1
        assert "alice, bob" in capsys.readouterr().err

        cli("get", "example.com", "bob", "--show")
        assert last_line(capsys) == bob

    def test_get_wrong_password(self, cli, capsys):
        cli("add", "example.com", "alice", "--show")

        with pytest.raises(SystemExit) as exc:
            cli("get", "example.com", "--show", password="wrong")
        assert exc.value.code == 1
        assert "Invalid password" in capsys.readouterr().err

    def test_get_missing_item(self, cli, capsys):
        cli("add", "example.com", "alice", "--show")

        with pytest.raises(SystemExit) as exc:
            cli("get", "missing.com", "--show")
        assert exc.value.code == 1
        assert "Item not found: missing.com" in capsys.readouterr().err

    def test_get_empty_vault(self, cli, capsys):
        cli("get", "example.com", "--show")
        assert last_line(capsys) == "No items stored yet"

    @patch("passvault.main.getpass.getpass")
    def test_get_prompts_for_password(self, mock_getpass, cli, capsys, passphrase):
        """Test the masked prompt is used when no password is given."""
        cli("add", "example.com", "alice", "--show")
        password = last_line(capsys)
        mock_getpass.return_value = passphrase

        cli("get", "example.com", "--show", password=None)

        assert last_line(capsys) == password
        mock_getpass.assert_called_once()


class TestCmdList:
    """Tests for the list command."""

    def test_list_names(self, cli, capsys):
        cli("add", "b.com", "alice", "--show")
        cli("add", "a.com", "bob", "--show")
        capsys.readouterr()

        cli("list")
        assert capsys.readouterr().out.splitlines() == ["b.com", "a.com"]

    def test_list_item(self, cli, capsys):
        cli("add", "example.com", "alice", "--show")
        cli("add", "example.com", "bob", "--show")
        capsys.readouterr()

        cli("list", "example.com")
        assert capsys.readouterr().out.splitlines() == ["example.com", "  alice", "  bob"]

    def test_list_empty(self, cli, capsys):
        cli("list")
        assert last_line(capsys) == "No items stored yet"


class TestCmdEdit:
    """Tests for the edit command."""

    def test_edit_with_flag(self, cli, capsys):
        cli("add", "example.com", "alice", "--show")
        cli("edit", "example.com", "--new-username", "alicia")
        capsys.readouterr()

        cli("list", "example.com")
        assert "  alicia" in capsys.readouterr().out.splitlines()

    @patch("builtins.input", return_value="")
    def test_edit_empty_input_keeps_username(self, mock_input, cli, capsys):
        cli("add", "example.com", "alice", "--show")
        cli("edit", "example.com")
        capsys.readouterr()

        cli("list", "example.com")
        assert capsys.readouterr().out.splitlines() == ["example.com", "  alice"]

    @patch("builtins.input", return_value="alicia")
    def test_edit_prompts(self, mock_input, cli, capsys):
        cli("add", "example.com", "alice", "--show")
        cli("edit", "example.com")

        mock_input.assert_called_once()
        assert last_line(capsys) == "Saved."

    def test_edit_onto_existing_username(self, cli, capsys):
        cli("add", "example.com", "alice", "--show")
        cli("add", "example.com", "bob", "--show")

        with pytest.raises(SystemExit) as exc:
            cli("edit", "example.com", "alice", "--new-username", "bob")
        assert exc.value.code == 1


class TestCmdDelete:
    """Tests for the delete command."""

    def test_delete_cascade(self, cli, capsys):
        cli("add", "example.com", "alice", "--show")
        cli("add", "example.com", "bob", "--show")

        cli("delete", "example.com", "alice")
        assert last_line(capsys) == "Deleted."

        cli("delete", "example.com")
        assert last_line(capsys) == "Deleted example.com."

        cli("list")
        assert last_line(capsys) == "No items stored yet"

    def test_delete_missing(self, cli):
        with pytest.raises(SystemExit) as exc:
            cli("delete", "missing.com")
        assert exc.value.code == 1


class TestMain:
    """Tests for argument parsing."""

    def test_no_command(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1

    @pytest.mark.parametrize("storage", sorted(STORES))
    def test_storage_choices_follow_backends(self, temp_vault_dir, capsys, storage):
        """Test every registered backend is accepted by --storage."""
        main(["--vault", str(temp_vault_dir / "vault"), "--storage", storage, "list"])
        assert last_line(capsys) == "No items stored yet"

    def test_unknown_storage_choice(self):
        with pytest.raises(SystemExit) as exc:
            main(["--storage", "firestore", "list"])
        assert exc.value.code == 2

    def test_bad_config_value(self, temp_vault_dir, capsys):
        """Test configuration errors become an exit status."""
        with patch.dict(os.environ, {"PASSVAULT_PASSWORD_LENGTH": "2"}):
            with pytest.raises(SystemExit) as exc:
                main(["--vault", str(temp_vault_dir / "v.json"), "list"])
        assert exc.value.code == 1
        assert "password_length" in capsys.readouterr().err
