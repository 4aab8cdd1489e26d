from __future__ import annotations

import logging
import os

import typer
from dotenv import load_dotenv

from src.db.init_db import init_db
from src.db.session import get_database_url
from src.ledger.recurring.cli import recurring_app

app = typer.Typer(help="Ledger CLI")
app.add_typer(recurring_app, name="recurring")


@app.callback()
def main() -> None:
    load_dotenv()
    level = os.environ.get("LOG_LEVEL", "WARNING").strip().upper() or "WARNING"
    logging.basicConfig(level=getattr(logging, level, logging.WARNING), format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command("init-db")
def init_db_cmd():
    init_db()
    typer.echo(f"Initialized {get_database_url()}")


if __name__ == "__main__":
    app()
