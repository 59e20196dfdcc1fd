# arithduel/__init__.py
from __future__ import annotations
import os, secrets
import logging
import click
from flask import Flask

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from .config import CONFIGS

# --- extensions ---
# in-memory limiter; state is per process like the lobbies themselves
limiter = Limiter(get_remote_address, storage_uri="memory://")


def create_app(config_name: str | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)

    # ---------------------------
    # Config
    # ---------------------------
    config_name = config_name or os.environ.get("DUEL_CONFIG", "default")
    app.config.from_object(CONFIGS.get(config_name, CONFIGS["default"]))
    app.config.from_pyfile("config.py", silent=True)  # instance/config.py (optional)

    if not app.config.get("SECRET_KEY"):
        app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY") or secrets.token_hex(32)

    # ---------------------------
    # Logging
    # ---------------------------
    level = getattr(logging, str(app.config.get("DUEL_LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger().setLevel(level)                # root

    for name in ("arithduel", "arithduel.games", "arithduel.games.core", "arithduel.games.duel"):
        logging.getLogger(name).setLevel(level)

    for h in app.logger.handlers:
        h.setLevel(level)

    # ---------------------------
    # Extensions / stores
    # ---------------------------
    limiter.init_app(app)

    from .games.core.store_registry import init_duel_stores
    init_duel_stores(app)

    # ---------------------------
    # Blueprints
    # ---------------------------
    from .games.duel.duel_routes import bp as duel_bp
    # url_prefix="/games/duel" is set on the blueprint
    app.register_blueprint(duel_bp)

    # ---------------------------
    # CLI commands
    # ---------------------------
    from .games.core.coerce_utils import coerce_variables
    from .games.core.difficulty import PROFILES, get_profile
    from .games.core.solver import compute_reachable_set, find_solving_expression, round_atoms

    @app.cli.command("duel-solve")
    @click.argument("values", nargs=-1, type=int, required=True)
    @click.option("--target", "-t", type=int, required=True, help="Value to reach.")
    @click.option("--variable", "-v", "variables", multiple=True, help="Bound variable, e.g. x=4.")
    @click.option("--difficulty", "-d", default=None, help="Profile whose operators apply.")
    def duel_solve(values, target, variables, difficulty):
        """Find an expression over VALUES that evaluates to TARGET."""
        profile = get_profile(difficulty or app.config.get("DUEL_DEFAULT_DIFFICULTY"))
        bound = coerce_variables(list(variables))
        expr = find_solving_expression(list(values), target, profile.operators, bound)
        if expr is None:
            click.echo(f"No solution for {list(values)} -> {target} ({profile.key})")
            raise click.exceptions.Exit(1)
        click.echo(f"{expr} = {target}")

    @app.cli.command("duel-reachable")
    @click.argument("values", nargs=-1, type=int, required=True)
    @click.option("--difficulty", "-d", default=None, help="Profile whose operators apply.")
    @click.option("--variable", "-v", "variables", multiple=True, help="Bound variable, e.g. x=4.")
    def duel_reachable(values, difficulty, variables):
        """List every integer reachable from VALUES."""
        profile = get_profile(difficulty or app.config.get("DUEL_DEFAULT_DIFFICULTY"))
        atoms = round_atoms(list(values), coerce_variables(list(variables)))
        reachable = sorted(compute_reachable_set(atoms, profile.operators))
        in_range = [v for v in reachable if profile.target_range.contains(v)]
        click.echo(f"{len(reachable)} reachable, {len(in_range)} in target range "
                   f"{profile.target_range.min}..{profile.target_range.max}")
        click.echo(" ".join(map(str, reachable)))

    @app.cli.command("duel-profiles")
    def duel_profiles():
        """Print the difficulty profiles."""
        for key, p in PROFILES.items():
            click.echo(
                f"{key:7s} cards={p.card_count}x{p.card_range.min}-{p.card_range.max} "
                f"vars={','.join(p.variables) or '-'} target={p.target_range.min}-{p.target_range.max} "
                f"ops={''.join(p.operators)} hp={p.player_hp} "
                f"close<={p.accuracy.close} miss>={p.accuracy.miss}"
            )

    @app.cli.command("duel-lobbies")
    def duel_lobbies():
        """Print the lobbies held by this process."""
        from .games.core.store_registry import lobbies, matches
        with app.app_context():
            rooms = lobbies().all()
            if not rooms:
                click.echo("No lobbies.")
                return
            for l in rooms:
                session = matches().get(l.room_code)
                rnd = f" round={session.round_number} ({session.status})" if session else ""
                click.echo(f"{l.room_code} {l.status:8s} {l.difficulty:6s} "
                           f"host={l.host_name} guest={l.guest_name or '-'}{rnd}")

    @app.after_request
    def set_security_headers(resp):
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return resp

    return app
