"""CLI entry point for totpkeep."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.live import Live
from rich.progress_bar import ProgressBar
from rich.table import Table

from totpkeep.auth import totp
from totpkeep.auth.secret import generate_secret
from totpkeep.config import Settings, load_presets, settings
from totpkeep.crypto import SecretCipher, generate_master_key
from totpkeep.errors import CredentialNotFoundError, StorageError, TotpError
from totpkeep.models import Algorithm, CredentialConfig, CredentialForm, DerivedState, Preset
from totpkeep.registry import CredentialStore, JsonFileKeyValueStore, Registry
from totpkeep.scheduler import CountdownScheduler, wall_clock_ms

console = Console()

ALGORITHM_CHOICES = [a.value for a in Algorithm] + [a.label for a in Algorithm]


def open_store(cfg: Settings) -> CredentialStore:
    registry = Registry(JsonFileKeyValueStore(cfg.data_file), cipher=SecretCipher.from_settings(cfg))
    return CredentialStore(registry)


@contextmanager
def _domain_errors() -> Iterator[None]:
    try:
        yield
    except CredentialNotFoundError as e:
        raise click.ClickException(f"No credential matches {e.args[0]!r}") from e
    except ValidationError as e:
        messages = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())
        raise click.ClickException(messages) from e
    except (TotpError, StorageError, ValueError) as e:
        raise click.ClickException(str(e)) from e


def _store(ctx: click.Context) -> CredentialStore:
    with _domain_errors():
        return open_store(ctx.obj)


def _short(id: str) -> str:
    return id[:8]


@click.group()
@click.option("--data-file", type=click.Path(dir_okay=False, path_type=Path), help="Credential file to use.")
@click.option("-v", "--verbose", is_flag=True, help="Log at DEBUG level.")
@click.pass_context
def main(ctx: click.Context, data_file: Path | None, verbose: bool) -> None:
    """totpkeep: personal TOTP authenticator."""
    cfg = settings.model_copy(update={"data_file": data_file}) if data_file else settings
    logging.basicConfig(
        level=logging.DEBUG if verbose else cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    ctx.obj = cfg


@main.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List stored credentials."""
    store = _store(ctx)
    if not store.entries:
        console.print("No credentials yet. Add one with [bold]totpkeep add[/bold].")
        return
    table = Table("ID", "Name", "Issuer", "Algorithm", "Digits", "Period")
    for e in store.entries:
        table.add_row(_short(e.id), e.name, e.issuer or "-", e.algorithm_label, str(e.digits), f"{e.period}s")
    console.print(table)


@main.command()
@click.argument("name")
@click.argument("secret")
@click.option("--preset", type=click.Choice([p.value for p in Preset]), default=Preset.OTHER.value)
@click.option("--issuer")
@click.option("--algorithm", type=click.Choice(ALGORITHM_CHOICES, case_sensitive=False))
@click.option("--digits", type=int)
@click.option("--period", type=int)
@click.pass_context
def add(
    ctx: click.Context,
    name: str,
    secret: str,
    preset: str,
    issuer: str | None,
    algorithm: str | None,
    digits: int | None,
    period: int | None,
) -> None:
    """Add a credential."""
    cfg: Settings = ctx.obj
    store = _store(ctx)
    overrides: dict[str, object] = {}
    if preset == Preset.OTHER:
        overrides = {
            "algorithm": cfg.default_algorithm,
            "digits": cfg.default_digits,
            "period": cfg.default_period,
        }
    given = {"issuer": issuer, "algorithm": algorithm, "digits": digits, "period": period}
    overrides.update({k: v for k, v in given.items() if v is not None})
    with _domain_errors():
        form = CredentialForm.from_preset(preset, name, secret, **overrides)
        entries = store.add(form)
    console.print(f"[green]Added[/green] {name} ({_short(entries[-1].id)})")


@main.command()
@click.argument("ref")
@click.option("--name")
@click.option("--secret")
@click.option("--issuer")
@click.option("--algorithm", type=click.Choice(ALGORITHM_CHOICES, case_sensitive=False))
@click.option("--digits", type=int)
@click.option("--period", type=int)
@click.pass_context
def edit(ctx: click.Context, ref: str, **changes: object) -> None:
    """Edit a credential by id, id prefix or name."""
    store = _store(ctx)
    with _domain_errors():
        existing = store.find(ref)
        values = existing.model_dump(include={"name", "secret", "issuer", "algorithm", "digits", "period"})
        values.update({k: v for k, v in changes.items() if v is not None})
        store.update(existing.id, CredentialForm(**values))
    console.print(f"[green]Updated[/green] {values['name']} ({_short(existing.id)})")


@main.command()
@click.argument("ref")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def remove(ctx: click.Context, ref: str, yes: bool) -> None:
    """Delete a credential."""
    store = _store(ctx)
    with _domain_errors():
        existing = store.find(ref)
        if not yes:
            click.confirm(f"Delete {existing.name}?", abort=True)
        store.delete(existing.id)
    console.print(f"[red]Deleted[/red] {existing.name}")


@main.command()
@click.argument("ref")
@click.option("--at", "at", type=int, help="Unix time to compute for (default: now).")
@click.pass_context
def code(ctx: click.Context, ref: str, at: int | None) -> None:
    """Print the code for a credential."""
    store = _store(ctx)
    now_ms = at * 1000 if at is not None else wall_clock_ms()
    with _domain_errors():
        entry = store.find(ref)
        value = totp.compute_for(entry, now_ms // 1000)
        left = totp.seconds_remaining(now_ms, entry.period)
    console.print(f"[bold]{value}[/bold]  ({left}s left)")


@main.command()
@click.argument("ref")
@click.argument("otp")
@click.option("--window", type=int, default=1, show_default=True, help="Steps of clock drift to accept.")
@click.pass_context
def verify(ctx: click.Context, ref: str, otp: str, window: int) -> None:
    """Check a code against a credential."""
    store = _store(ctx)
    with _domain_errors():
        entry = store.find(ref)
        ok = totp.verify(entry, otp, int(time.time()), valid_window=window)
    if not ok:
        raise click.ClickException("Code does not match")
    console.print("[green]Code is valid[/green]")


def _render(scheduler: CountdownScheduler, entries: tuple[CredentialConfig, ...]) -> Table:
    overlay = scheduler.overlay()
    status = scheduler.status()
    table = Table(
        "Name",
        "Code",
        "Left",
        "Progress",
        caption=f"{status['running_count']} running, refresh every {status['interval']:g}s",
    )
    for e in entries:
        state = overlay.get(e.id)
        if state is None or not state.is_running:
            continue
        if state.error:
            table.add_row(e.name, "[red]------[/red]", "", state.error)
            continue
        bar = ProgressBar(total=1.0, completed=state.progress, width=20)
        table.add_row(e.name, f"[bold]{state.code}[/bold]", f"{state.seconds_remaining}s", bar)
    return table


@main.command()
@click.argument("refs", nargs=-1)
@click.option("--once", is_flag=True, help="Print a single snapshot and exit.")
@click.pass_context
def watch(ctx: click.Context, refs: tuple[str, ...], once: bool) -> None:
    """Show live codes with a countdown (Ctrl+C to stop)."""
    cfg: Settings = ctx.obj
    store = _store(ctx)
    with _domain_errors():
        selected = [store.find(r) for r in refs] if refs else list(store.entries)
    if not selected:
        console.print("Nothing to watch.")
        return

    scheduler = CountdownScheduler(store, interval=cfg.tick_interval)
    try:
        if once:
            now_ms = wall_clock_ms()
            for entry in selected:
                scheduler.start(entry.id, now_ms)
            console.print(_render(scheduler, store.entries))
            return
        for entry in selected:
            scheduler.start(entry.id)
        with Live(_render(scheduler, store.entries), console=console, refresh_per_second=4) as live:
            while scheduler.ticking:
                time.sleep(0.25)
                live.update(_render(scheduler, store.entries))
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.shutdown()


@main.command()
def presets() -> None:
    """Show issuer presets."""
    console.print_json(data=load_presets())


@main.command("new-secret")
@click.option("--length", type=int, default=32, show_default=True)
def new_secret(length: int) -> None:
    """Generate a random Base32 secret."""
    with _domain_errors():
        console.print(generate_secret(length))


@main.command()
def genkey() -> None:
    """Generate a master key for TOTPKEEP_MASTER_KEY."""
    console.print(generate_master_key())


if __name__ == "__main__":
    main()
