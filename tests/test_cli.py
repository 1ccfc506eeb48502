"""
Tests for the command-line interface.
"""

import pytest

from vaultscript.__main__ import main


@pytest.fixture
def script(tmp_path):
    def write(text, name="script.vs"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)
    return write


class TestRunCommand:
    """Test `run`."""

    def test_runs_script(self, script, capsys):
        """A successful run prints its output and exits 0."""
        path = script('x = 20; print-> "total: " + (x + 1);')
        assert main(["run", path]) == 0
        assert capsys.readouterr().out == "total: 21\n"

    def test_waits_for_counted_trigger(self, script, capsys):
        """The run ends after the counted trigger halts the scheduler."""
        path = script('@EVENT_TRIGGER(0.02, seconds, 2) -> print-> "tick";')
        assert main(["run", path]) == 0
        assert capsys.readouterr().out == "tick\ntick\n"

    def test_no_wait(self, script, capsys):
        """--no-wait exits without running pending triggers."""
        path = script('@EVENT_TRIGGER(1, hours) -> print-> "late"; print-> "done";')
        assert main(["run", path, "--no-wait"]) == 0
        assert capsys.readouterr().out == "done\n"

    def test_missing_file(self, tmp_path, capsys):
        """A missing script is reported."""
        assert main(["run", str(tmp_path / "nope.vs")]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_parse_error(self, script, capsys):
        """Syntax errors are printed and nothing runs."""
        path = script('print-> "before"; x = ;')
        assert main(["run", path]) == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "error[E1" in captured.err

    def test_runtime_error(self, script, capsys):
        """Runtime errors stop the script with exit code 1."""
        path = script('print-> "before"; x = 1 / 0; print-> "after";')
        assert main(["run", path]) == 1
        captured = capsys.readouterr()
        assert captured.out == "before\n"
        assert "E405" in captured.err

    def test_runaway_recursion(self, script, capsys):
        """Unbounded recursion is reported as a script error."""
        path = script("function f(n){ return f(n + 1); }; f(0);")
        assert main(["run", path]) == 1
        assert "E414" in capsys.readouterr().err

    def test_scheduled_error(self, script, capsys):
        """Failures inside scheduled actions set the exit code."""
        path = script("@EVENT_TRIGGER(0.02, seconds, 1) -> x = 1 / 0;")
        assert main(["run", path]) == 1
        assert "E405" in capsys.readouterr().err


class TestRunConfig:
    """Test `run --config`."""

    def test_config_key(self, script, tmp_path, capsys):
        """A configured key is used for encrypted variables."""
        config = tmp_path / "vaultscript.yaml"
        config.write_text("encryption:\n  key: fedcba9876543210\n", encoding="utf-8")
        path = script("@ENCpin = 1234; plain = @ENCpin; print-> plain + 1;")
        assert main(["run", path, "--config", str(config)]) == 0
        assert capsys.readouterr().out == "1235\n"

    def test_bad_key(self, script, tmp_path, capsys):
        """Keys of the wrong size are rejected before running."""
        config = tmp_path / "vaultscript.yaml"
        config.write_text("encryption:\n  key: short\n", encoding="utf-8")
        path = script('print-> "never";')
        assert main(["run", path, "-c", str(config)]) == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "AES key" in captured.err

    def test_missing_config(self, script, tmp_path, capsys):
        """A missing config file is an error."""
        path = script('print-> 1;')
        assert main(["run", path, "-c", str(tmp_path / "none.yaml")]) == 1
        assert "config file not found" in capsys.readouterr().err


class TestInspectionCommands:
    """Test `tokens` and `parse`."""

    def test_tokens(self, script, capsys):
        """Tokens print one per line with their position."""
        path = script("x = 1;")
        assert main(["tokens", path]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "1:1\tIDENTIFIER\t'x'"
        assert lines[1] == "1:3\tASSIGN\t'='"
        assert lines[-1].split("\t")[1] == "EOF"

    def test_tokens_lexer_error(self, script, capsys):
        """Lexer errors exit 1."""
        path = script('x = "unterminated;')
        assert main(["tokens", path]) == 1
        assert "error[E0" in capsys.readouterr().err

    def test_parse(self, script, capsys):
        """The syntax tree is printed."""
        path = script("use blockchain;")
        assert main(["parse", path]) == 0
        out = capsys.readouterr().out
        assert out.splitlines()[0] == "Use"
        assert "library: 'blockchain'" in out

    def test_requires_subcommand(self):
        """A subcommand is mandatory."""
        with pytest.raises(SystemExit):
            main([])
