from pathlib import Path

from click.testing import CliRunner

from ephemurl.cli import cli
from ephemurl.common import tokens

IDENTITY_KEY = bytes(range(32))


def test_cli_help() -> None:
    """Test CLI help command."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Usage:" in result.output
    assert "register" in result.output


def test_cli_serve_help() -> None:
    """Test serve command help."""
    runner = CliRunner()
    result = runner.invoke(cli, ["serve", "--help"])
    assert result.exit_code == 0
    assert "Start the reference beacon service" in result.output


def test_cli_token() -> None:
    """Test token command."""
    runner = CliRunner()
    result = runner.invoke(
        cli,
        [
            "token",
            "--identity-key",
            IDENTITY_KEY.hex(),
            "--exponent",
            "10",
            "--epoch",
            "1000000",
            "--now",
            "1002500",
        ],
    )
    assert result.exit_code == 0
    expected = tokens.encode_token(tokens.token_for_counter(IDENTITY_KEY, 2))
    assert result.output.splitlines() == [
        expected,
        "counter: 2",
        "next rotation in: 572s",
    ]


def test_cli_token_before_epoch() -> None:
    """Test token command rejects times before the epoch."""
    runner = CliRunner()
    result = runner.invoke(
        cli,
        [
            "token",
            "--identity-key",
            IDENTITY_KEY.hex(),
            "--exponent",
            "10",
            "--epoch",
            "1000000",
            "--now",
            "5",
        ],
    )
    assert result.exit_code != 0
    assert "before beacon epoch" in result.output


def test_cli_add_url_and_list(tmp_path: Path) -> None:
    """Test add-url and beacons commands."""
    runner = CliRunner()
    data_dir = ["--data-dir", str(tmp_path)]

    added = runner.invoke(cli, [*data_dir, "add-url", "7", "secret", "--ttl", "60"])
    assert added.exit_code == 0
    record_id = added.output.split()[0]

    listed = runner.invoke(cli, [*data_dir, "beacons"])
    assert listed.exit_code == 0
    assert record_id in listed.output
    assert "url=-" in listed.output

    deleted = runner.invoke(cli, [*data_dir, "delete", record_id])
    assert deleted.exit_code == 0
    assert record_id not in runner.invoke(cli, [*data_dir, "beacons"]).output


def test_cli_refresh_unknown_beacon(tmp_path: Path) -> None:
    """Test refresh of a missing beacon."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--data-dir", str(tmp_path), "refresh", "nope"])
    assert result.exit_code == 1
    assert "No beacon nope" in result.output


def test_cli_verify_requires_sign_in(tmp_path: Path) -> None:
    """Test verify without a cached credential."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--data-dir", str(tmp_path), "verify", "abc"])
    assert result.exit_code == 1
    assert "missing or expired" in result.output


def test_cli_sign_out(tmp_path: Path) -> None:
    """Test sign-out removes the cached credential."""
    credential = tmp_path / "credential.json"
    credential.write_text('{"token": "abc", "expire_at": 9999999999}')
    runner = CliRunner()
    result = runner.invoke(cli, ["--data-dir", str(tmp_path), "sign-out"])
    assert result.exit_code == 0
    assert "Signed out" in result.output
    assert not credential.exists()
