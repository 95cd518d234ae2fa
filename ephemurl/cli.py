"""
Command-line interface for ephemeral URL beacons.
"""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from ephemurl.client.client import BeaconClient
from ephemurl.common import tokens
from ephemurl.common.config import Config
from ephemurl.common.exceptions import BeaconError

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from ephemurl.common.models import BeaconRecord


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        return asyncio.run(coro)
    except BeaconError as err:
        raise click.ClickException(str(err)) from err


def _describe(client: BeaconClient, record: BeaconRecord) -> str:
    lease = record.get_lease()
    parts = [record.record_id, record.state.value, record.status.value]
    if record.server_id:
        parts.append(f"id={record.server_id}")
    if record.has_rotation:
        parts.append(f"exp={record.rotation_exponent}")
        token = client.current_token(record)
        if token:
            parts.append(f"token={token}")
    if lease is not None:
        parts.append(f"url={lease.current_short_url or '-'}")
    return "  ".join(parts)


def _find(client: BeaconClient, record_id: str) -> BeaconRecord:
    record = client.get_beacon(record_id)
    if record is None:
        msg = f"No beacon {record_id}"
        raise click.ClickException(msg)
    return record


@click.group()
@click.option("--service-url", default=None, help="Beacon service base URL")
@click.option(
    "--data-dir",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for the credential and beacon records",
)
@click.pass_context
def cli(ctx: click.Context, service_url: str | None, data_dir: Path | None) -> None:
    """Ephemeral URL beacon CLI"""
    ctx.ensure_object(dict)
    ctx.obj["service_url"] = service_url
    ctx.obj["data_dir"] = data_dir


def _client(ctx: click.Context) -> BeaconClient:
    return BeaconClient(
        service_url=ctx.obj.get("service_url"), data_dir=ctx.obj.get("data_dir")
    )


@cli.command()
@click.option("--identity-key", required=True, help="Identity key, hex")
@click.option("--exponent", required=True, type=click.IntRange(0, 255))
@click.option("--epoch", required=True, type=int, help="Beacon epoch, UNIX seconds")
@click.option("--now", default=None, type=float, help="Time to compute at")
def token(identity_key: str, exponent: int, epoch: int, now: float | None) -> None:
    """Compute the token a beacon broadcasts"""
    if now is None:
        now = time.time()
    try:
        key = bytes.fromhex(identity_key)
        raw = tokens.compute_token(key, exponent, epoch, now)
    except ValueError as err:
        raise click.BadParameter(str(err)) from err
    counter = tokens.rotation_counter(exponent, epoch, now)
    remaining = tokens.time_until_next_rotation(epoch, exponent, now)
    click.echo(tokens.encode_token(raw))
    click.echo(f"counter: {counter}")
    click.echo(f"next rotation in: {remaining:.0f}s")


@cli.command("sign-in")
@click.argument("assertion")
@click.pass_context
def sign_in(ctx: click.Context, assertion: str) -> None:
    """Exchange an identity assertion for an access credential"""
    client = _client(ctx)
    credential = _run(client.sign_in(assertion))
    click.echo(f"Signed in until {time.ctime(credential.expire_at)}")


@cli.command("sign-out")
@click.pass_context
def sign_out(ctx: click.Context) -> None:
    """Clear the cached credential"""
    _client(ctx).sign_out()
    click.echo("Signed out")


@cli.command()
@click.option("--exponent", default=None, type=click.IntRange(0, 255))
@click.option("--tag", default=None)
@click.pass_context
def register(ctx: click.Context, exponent: int | None, tag: str | None) -> None:
    """Register a new rotating beacon"""
    client = _client(ctx)

    async def _register() -> BeaconRecord:
        await client.sync_clock()
        return await client.register_beacon(exponent, tag)

    record = _run(_register())
    click.echo(_describe(client, record))


@cli.command("add-url")
@click.argument("url_id", type=int)
@click.argument("url_token")
@click.option("--ttl", default=0, type=int, help="Short URL lifetime, 0 = never")
@click.option("--tag", default=None)
@click.pass_context
def add_url(
    ctx: click.Context, url_id: int, url_token: str, ttl: int, tag: str | None
) -> None:
    """Add a beacon advertising short URLs of a registered URL"""
    client = _client(ctx)
    record = client.add_leased_beacon(url_id, url_token, ttl, tag)
    click.echo(_describe(client, record))


@cli.command()
@click.argument("record_id")
@click.pass_context
def refresh(ctx: click.Context, record_id: str) -> None:
    """Issue a new short URL for a beacon"""
    client = _client(ctx)
    result = _run(client.refresh(_find(client, record_id)))
    click.echo(result.short_url)


@cli.command()
@click.pass_context
def beacons(ctx: click.Context) -> None:
    """List local beacons"""
    client = _client(ctx)
    for record in client.beacons():
        click.echo(_describe(client, record))


@cli.command()
@click.argument("record_id")
@click.pass_context
def delete(ctx: click.Context, record_id: str) -> None:
    """Delete a local beacon"""
    client = _client(ctx)
    client.delete_beacon(_find(client, record_id))
    click.echo(f"Deleted {record_id}")


@cli.command()
@click.argument("token_value", metavar="TOKEN")
@click.pass_context
def verify(ctx: click.Context, token_value: str) -> None:
    """Ask the service which beacon broadcasts TOKEN"""
    info = _run(_client(ctx).check_token(token_value))
    since, until = info.valid_since.isoformat(), info.valid_until.isoformat()
    click.echo(f"{info.beacon} {since} {until}")


@cli.command()
@click.pass_context
def advertise(ctx: click.Context) -> None:
    """Advertise all active beacons until interrupted"""
    client = _client(ctx)

    async def _advertise() -> None:
        await client.sync_clock()
        await client.runner.run()

    try:
        _run(_advertise())
    except KeyboardInterrupt:
        click.echo("Stopped")


@cli.command()
@click.option("--host", default=None, help="Host to bind the service to")
@click.option("--port", default=None, type=int, help="Port to bind the service to")
@click.option("--auth-secret", default=None, help="Assertion required by /auth")
def serve(host: str | None, port: int | None, auth_secret: str | None) -> None:
    """Start the reference beacon service"""
    from ephemurl.server import start_server  # noqa: PLC0415

    # Set environment variables before building config
    if host:
        os.environ["EPHEMURL_SERVER_HOST"] = host
    if port:
        os.environ["EPHEMURL_SERVER_PORT"] = str(port)
    if auth_secret:
        os.environ["EPHEMURL_AUTH_SECRET"] = auth_secret

    start_server(Config())


if __name__ == "__main__":
    cli()
