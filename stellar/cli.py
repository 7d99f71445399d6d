"""Stellar Console CLI tool (stellarctl)."""

import json

import typer

app = typer.Typer(name="stellarctl", help="Stellar Console CLI")
db_app = typer.Typer(help="Database management commands")
app.add_typer(db_app, name="db")


@db_app.command("create")
def db_create():
    """Create the MySQL metadata database if it doesn't exist."""
    import pymysql
    from sqlalchemy.engine import make_url
    from stellar.core.config import settings

    url = make_url(settings.DATABASE_URL)
    conn = pymysql.connect(
        host=url.host or "localhost", port=url.port or 3306,
        user=url.username, password=url.password or "",
    )
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"CREATE DATABASE IF NOT EXISTS `{url.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()
        typer.echo(f"Database '{url.database}' created (or already exists)")
    finally:
        conn.close()


@db_app.command("init")
def db_init():
    """Create all tables."""
    from stellar.db.base import Base
    from stellar.db.session import engine
    import stellar.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    typer.echo("Tables created")


@db_app.command("seed")
def db_seed():
    """Seed permissions, roles, the default organization and the super-admin."""
    from stellar.db.session import SessionLocal
    from stellar.db.seeds.seed_permissions import seed_permissions
    from stellar.db.seeds.seed_roles import seed_roles
    from stellar.db.seeds.seed_super_admin import seed_default_organization, seed_super_admin

    db = SessionLocal()
    try:
        seed_permissions(db)
        seed_roles(db)
        seed_default_organization(db)
        seed_super_admin(db)
    finally:
        db.close()
    typer.echo("All seeds applied")


@app.command("add-cluster")
def add_cluster(
    name: str = typer.Argument(..., help="Display name"),
    host: str = typer.Argument(..., help="Frontend host"),
    username: str = typer.Option("root", help="Engine user"),
    password: str = typer.Option("", help="Engine password (stored encrypted)"),
    port: int = typer.Option(9030, help="MySQL protocol port"),
    organization_id: int = typer.Option(None, help="Owning organization"),
):
    """Register a cluster."""
    from stellar.db.session import SessionLocal
    from stellar.services.cluster_service import cluster_service

    db = SessionLocal()
    try:
        cluster = cluster_service.create(db, name, host, username, password, port, organization_id)
        typer.echo(f"Registered cluster [{cluster.id}] {cluster.name}")
    finally:
        db.close()


@app.command("preview")
def preview(
    request_type: str = typer.Argument(..., help="grant_role | grant_permission | revoke_permission"),
    details: str = typer.Argument(..., help="Request details as JSON"),
):
    """Print the SQL a permission request would execute."""
    from stellar.core.exceptions import ValidationError
    from stellar.services.permission_request_service import PermissionRequestService

    try:
        payload = {"request_type": request_type, "request_details": json.loads(details)}
        typer.echo(PermissionRequestService().preview(payload))
    except json.JSONDecodeError as e:
        typer.echo(f"Invalid JSON: {e}", err=True)
        raise typer.Exit(code=2)
    except ValidationError as e:
        typer.echo(e.message, err=True)
        raise typer.Exit(code=1)


@app.command("redispatch")
def redispatch(
    older_than: int = typer.Option(None, help="Grace period in seconds (default from settings)"),
):
    """Dispatch again approved requests stuck in executing."""
    from stellar.db.session import SessionLocal
    from stellar.services.permission_request_service import permission_request_service

    db = SessionLocal()
    try:
        ids = permission_request_service.redispatch_stalled(db, older_than)
    finally:
        db.close()
    typer.echo(f"Re-dispatched {len(ids)} request(s)")


@app.command("normalize-url")
def normalize_url(
    url: str = typer.Argument(..., help="Redirect target to normalize"),
    current_path: str = typer.Option("", help="Path currently served by the browser"),
    mode: str = typer.Option(None, help="path | hash (detected from current_path if omitted)"),
):
    """Show where a post-login redirect would land."""
    from stellar.services.path_normalizer import RoutingMode, path_normalizer

    routing = RoutingMode(mode) if mode else path_normalizer.detect_mode(current_path)
    typer.echo(path_normalizer.normalize(url, current_path, routing))


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload"),
):
    """Start the FastAPI server."""
    import uvicorn
    uvicorn.run("stellar.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
