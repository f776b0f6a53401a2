"""
Buff engine — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Load the catalog / open the backend client.
  4. Execute the query or ledger mutation.
  5. Report result to stdout.

Install and run::

    pip install -e .
    buff-engine --help
    buff-engine validate-config
    buff-engine validate-catalog
    buff-engine active-buffs --at 2025-11-22 --role elf
    buff-engine upcoming-buffs --hours 72
    buff-engine stack --ledger ledger.json --role human --minutes 25
    buff-engine grant --user-id u-123 --buff-id day10_boost
    buff-engine watch --user-id u-123 --role elf
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from buff_engine.taxonomy.buff_taxonomy import RoleType

app = typer.Typer(
    name="buff-engine",
    help="Promotional XP bonus engine — catalog queries and ledger tooling.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from pydantic import ValidationError

    from buff_engine.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except (ValidationError, ValueError) as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from buff_engine.utils.logging import configure_logging
    configure_logging(config.logging)


def _load_engine_or_exit(config, catalog_path: Optional[str] = None):
    """Build a ``BuffEngine`` over the configured (or given) catalog."""
    from pydantic import ValidationError

    from buff_engine.catalog.loader import load_catalog
    from buff_engine.config import resolve_catalog_path
    from buff_engine.engine.service import BuffEngine

    path = Path(catalog_path) if catalog_path else resolve_catalog_path(config)
    try:
        catalog = load_catalog(path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except (ValidationError, ValueError) as exc:
        typer.echo(f"[ERROR] Catalog validation failed: {exc}", err=True)
        raise typer.Exit(code=1)
    return BuffEngine(catalog, clock=config.clock)


def _parse_at_or_exit(at: Optional[str], tz_name: str):
    from buff_engine.utils.time_utils import parse_instant

    try:
        return parse_instant(at, tz_name)
    except ValueError:
        typer.echo(f"[ERROR] --at must be an ISO date or datetime, got '{at}'.", err=True)
        raise typer.Exit(code=1)


def _open_store(config):
    """Build the backend client; exits when no backend is configured."""
    from buff_engine.store.client import BuffStoreClient

    if not config.remote.is_configured:
        typer.echo(
            "[ERROR] No backend configured. Set BUFF_ENGINE_REMOTE_URL "
            "(and BUFF_ENGINE_REMOTE_API_KEY) in .env.",
            err=True,
        )
        raise typer.Exit(code=1)
    return BuffStoreClient.from_config(config.remote)


def _run_remote(coro) -> None:
    """Run a backend coroutine, mapping ``RemoteCallError`` to exit code 1."""
    from buff_engine.store.client import RemoteCallError

    try:
        asyncio.run(coro)
    except RemoteCallError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


_CONFIG_OPTION = typer.Option(None, "--config", help="Path to TOML config file.")
_AT_OPTION = typer.Option(
    None,
    "--at",
    help="Evaluation instant (ISO date or datetime; naive = configured timezone). Default: now.",
)


# ── Config / catalog ──────────────────────────────────────────────────────────

@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = _CONFIG_OPTION,
    show_full: bool = typer.Option(False, "--full", help="Print full config as JSON."),
) -> None:
    """Validate the configuration file and print parsed values."""
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Catalog path:     {config.catalog.path}")
    typer.echo(f"  Timezone:         {config.clock.timezone}")
    typer.echo(f"  Lookback days:    {config.clock.lookback_days}")
    typer.echo(f"  Recheck interval: {config.clock.refresh_interval_seconds:g}s")
    typer.echo(f"  Preview hours:    {config.clock.preview_hours:g}")
    typer.echo(f"  Backend:          {config.remote.base_url or '(not configured)'}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        dumped = config.model_dump()
        for secret in ("api_key", "access_token"):
            if dumped["remote"].get(secret):
                dumped["remote"][secret] = "***"
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(dumped, indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("validate-catalog")
def validate_catalog(
    catalog_path: Optional[str] = typer.Option(
        None, "--catalog", help="Catalog JSON file (default: config [catalog] path)."
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Load and validate the buff catalog, then summarise it.

    Exits with code 1 on duplicate ids, invalid rule fields, or bad JSON.
    Unrecognised rule types are reported but do not fail validation.
    """
    from buff_engine.models.rules import UnknownRule

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    engine = _load_engine_or_exit(config, catalog_path)
    catalog = engine.catalog

    typer.echo(f"  Event buffs:     {len(catalog.event_buffs)}")
    typer.echo(f"  Grantable buffs: {len(catalog.grantable_buffs)}")
    typer.echo(f"  Roles:           {', '.join(sorted(catalog.roles)) or '(none)'}")

    unknown = [b.id for b in catalog.event_buffs if isinstance(b.date_rule, UnknownRule)]
    if unknown:
        typer.echo(f"  [WARN] Never active (unrecognised rule type): {', '.join(unknown)}")

    typer.echo("")
    typer.echo("[OK] Catalog valid.")


# ── Queries ───────────────────────────────────────────────────────────────────

@app.command("active-buffs")
def active_buffs(
    at: Optional[str] = _AT_OPTION,
    role: Optional[RoleType] = typer.Option(None, "--role", help="Only buffs for this role."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List catalog buffs active at the given instant."""
    from buff_engine.reporting.formatters import format_active_buffs

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    engine = _load_engine_or_exit(config)
    now = _parse_at_or_exit(at, config.clock.timezone)
    role_id = role.value if role else None

    buffs = engine.get_active_buffs(now, role_id)
    typer.echo(format_active_buffs(buffs, now, role_id))


@app.command("upcoming-buffs")
def upcoming_buffs(
    at: Optional[str] = _AT_OPTION,
    hours: Optional[float] = typer.Option(
        None, "--hours", min=0, help="Preview horizon (default: config preview_hours)."
    ),
    role: Optional[RoleType] = typer.Option(None, "--role", help="Only buffs for this role."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List catalog buffs that start within the preview horizon."""
    from buff_engine.reporting.formatters import format_upcoming_buffs

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    engine = _load_engine_or_exit(config)
    now = _parse_at_or_exit(at, config.clock.timezone)
    role_id = role.value if role else None
    horizon = config.clock.preview_hours if hours is None else hours

    buffs = engine.get_upcoming_buffs(now, horizon, role_id)
    typer.echo(format_upcoming_buffs(buffs, now, horizon, role_id))


@app.command("stack")
def stack_cmd(
    ledger_file: str = typer.Option(
        ..., "--ledger", "-l", help="JSON file: {buff_id: {value, expires_at, metadata}}."
    ),
    role: RoleType = typer.Option(..., "--role", help="Role to stack for."),
    at: Optional[str] = _AT_OPTION,
    minutes: Optional[float] = typer.Option(
        None, "--minutes", min=0, help="Also compute the XP award for a session this long."
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show the catalog × ledger breakdown for a ledger snapshot."""
    from pydantic import ValidationError

    from buff_engine.engine.xp import award_xp
    from buff_engine.models.ledger import parse_ledger
    from buff_engine.reporting.formatters import format_combined, format_ledger

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    engine = _load_engine_or_exit(config)
    now = _parse_at_or_exit(at, config.clock.timezone)

    path = Path(ledger_file)
    if not path.exists():
        typer.echo(f"[ERROR] Ledger file not found: {path}", err=True)
        raise typer.Exit(code=1)
    try:
        entries = parse_ledger(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError, AttributeError) as exc:
        typer.echo(f"[ERROR] Invalid ledger file {path}: {exc}", err=True)
        raise typer.Exit(code=1)

    combined = engine.combine(entries, role.value, now)
    award = None
    if minutes is not None:
        try:
            stats = engine.catalog.role_stats(role.value)
        except KeyError as exc:
            typer.echo(f"[ERROR] {exc.args[0]}", err=True)
            raise typer.Exit(code=1)
        award = award_xp(stats, minutes, combined)

    typer.echo(format_ledger(entries, now))
    typer.echo(format_combined(combined, now, role.value, award))


# ── Ledger mutations (backend) ────────────────────────────────────────────────

@app.command("grant")
def grant(
    user_id: str = typer.Option(..., "--user-id", help="Ledger owner."),
    buff_id: str = typer.Option(..., "--buff-id", help="Buff to grant."),
    value: Optional[float] = typer.Option(
        None, "--value", help="Additive value (default: the buff's xpBonus)."
    ),
    hours: Optional[float] = typer.Option(
        None, "--hours", min=0, help="Lifetime in hours (default: grantDurationHours; none = permanent)."
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Grant a buff to a user through the backend and print the new ledger."""
    from datetime import timedelta

    from buff_engine.models.ledger import datetime_to_ms
    from buff_engine.reporting.formatters import format_ledger
    from buff_engine.store.grants import claim_timed_buff
    from buff_engine.store.ledger import ActiveBuffLedger

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    engine = _load_engine_or_exit(config)
    now = engine.now()

    definition = engine.catalog.get_grantable(buff_id)
    if definition is None and value is None:
        typer.echo(
            f"[ERROR] '{buff_id}' is not a grantable buff; pass --value to grant it anyway.",
            err=True,
        )
        raise typer.Exit(code=1)

    async def _grant() -> None:
        async with _open_store(config) as store:
            ledger = ActiveBuffLedger(user_id, store)
            if definition is not None and value is None and hours is None:
                await claim_timed_buff(ledger, engine.catalog, buff_id, now)
            else:
                expires_at = now + timedelta(hours=hours) if hours is not None else None
                await ledger.grant(
                    buff_id,
                    value if value is not None else definition.xp_bonus,
                    expires_at=expires_at,
                    metadata={"claimedAt": datetime_to_ms(now)},
                )
            typer.echo(format_ledger(ledger.entries, now))

    _run_remote(_grant())
    typer.echo(f"[OK] Granted {buff_id} to {user_id}.")


@app.command("revoke")
def revoke(
    user_id: str = typer.Option(..., "--user-id", help="Ledger owner."),
    buff_id: str = typer.Option(..., "--buff-id", help="Buff to remove."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Remove a buff from a user's ledger through the backend."""
    from buff_engine.store.ledger import ActiveBuffLedger

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    async def _revoke() -> None:
        async with _open_store(config) as store:
            await ActiveBuffLedger(user_id, store).revoke(buff_id)

    _run_remote(_revoke())
    typer.echo(f"[OK] Revoked {buff_id} from {user_id}.")


@app.command("sweep")
def sweep(
    user_id: str = typer.Option(..., "--user-id", help="Ledger owner."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Drop expired entries from a user's ledger through the backend."""
    from buff_engine.store.ledger import ActiveBuffLedger

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    async def _sweep() -> None:
        async with _open_store(config) as store:
            ledger = ActiveBuffLedger(user_id, store)
            await ledger.sweep_expired()
            typer.echo(f"  Entries remaining: {len(ledger)}")

    _run_remote(_sweep())
    typer.echo(f"[OK] Swept expired buffs for {user_id}.")


@app.command("auto-activate")
def auto_activate(
    user_id: str = typer.Option(..., "--user-id", help="Ledger owner."),
    role: RoleType = typer.Option(..., "--role", help="User's current role."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Grant every started auto-grant promotion the user does not hold yet."""
    from buff_engine.store.grants import auto_activate_promotions
    from buff_engine.store.ledger import ActiveBuffLedger

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    engine = _load_engine_or_exit(config)

    async def _activate() -> None:
        async with _open_store(config) as store:
            ledger = ActiveBuffLedger(user_id, store)
            await ledger.refresh()
            granted = await auto_activate_promotions(ledger, engine.catalog, role.value, engine.now())
            typer.echo(f"  Granted: {', '.join(granted) or '(nothing due)'}")

    _run_remote(_activate())
    typer.echo("[OK] Auto-activation complete.")


# ── Monitor ───────────────────────────────────────────────────────────────────

@app.command("watch")
def watch(
    user_id: Optional[str] = typer.Option(
        None, "--user-id", help="Authenticated user (default: guest, local clock only)."
    ),
    role: Optional[RoleType] = typer.Option(None, "--role", help="Also track the net multiplier."),
    interval: Optional[float] = typer.Option(
        None, "--interval", min=1, help="Seconds between rechecks (default: config)."
    ),
    iterations: Optional[int] = typer.Option(
        None, "--iterations", min=1, help="Stop after N rechecks (default: run until Ctrl-C)."
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Re-evaluate active buffs periodically and print every change."""
    from buff_engine.engine.guard import ServerAuthoritativeGuard
    from buff_engine.engine.monitor import BuffMonitor, MonitorSnapshot
    from buff_engine.store.ledger import ActiveBuffLedger

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    engine = _load_engine_or_exit(config)

    def _print(snapshot: MonitorSnapshot) -> None:
        active = ", ".join(snapshot.active_ids) or "(none)"
        line = f"{snapshot.at.isoformat(timespec='seconds')}  active: {active}"
        if snapshot.combined is not None:
            line += f"  net: x{snapshot.combined.net_multiplier:.4f}"
        typer.echo(line)

    async def _watch() -> None:
        store = _open_store(config) if (user_id and config.remote.is_configured) else None
        try:
            if store is not None:
                engine.guard = ServerAuthoritativeGuard(
                    store,
                    timezone=config.clock.timezone,
                    timeout_seconds=config.remote.guard_timeout_seconds,
                    lookback_days=config.clock.lookback_days,
                )
            ledger = ActiveBuffLedger(user_id, store) if (store is not None and role) else None
            monitor = BuffMonitor(
                engine,
                user_id=user_id,
                role=role.value if role else None,
                ledger=ledger,
                interval_seconds=interval,
                on_change=_print,
            )
            await monitor.run(max_iterations=iterations)
        finally:
            if store is not None:
                await store.aclose()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        typer.echo("Stopped.")


if __name__ == "__main__":
    app()
