"""
Startup diagnostics — runs once when the Flask app starts.

Checks the database, upload folder and provider configuration and logs a
summary banner.
"""

import logging
import os
import sys

from flask import Flask
from sqlalchemy import inspect as sa_inspect

from ceti.models import db

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except Exception as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        # ── Table count ──────────────────────────────────────────────
        try:
            table_count = len(sa_inspect(db.engine).get_table_names())
            if table_count == 0:
                issues.append("No tables found — run 'flask db upgrade'")
        except Exception:
            table_count = "?"

        # ── Upload folder ────────────────────────────────────────────
        upload_folder = app.config.get("UPLOAD_FOLDER", "")
        upload_status = "ok" if os.access(upload_folder, os.W_OK) else "NOT WRITABLE"
        if upload_status != "ok":
            issues.append(f"Upload folder not writable: {upload_folder}")

        # ── Rate-limit storage ───────────────────────────────────────
        redis_url = app.config.get("REDIS_URL", "")
        storage = "redis" if redis_url.startswith("redis") else "in-memory"

        # ── Provider keys ────────────────────────────────────────────
        provider = app.config.get("TRANSCRIPTION_PROVIDER", "openai")
        if provider == "openai":
            stt_key = "configured" if app.config.get("TRANSCRIPTION_API_KEY") else "NOT SET"
            summary_key = "configured" if app.config.get("SUMMARY_API_KEY") else "NOT SET"
            if stt_key != "configured" or summary_key != "configured":
                issues.append("Provider API keys missing — transcriptions will fail")
        else:
            stt_key = summary_key = "n/a"

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  CETI Backend — Startup Diagnostics                          ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Tables      : {str(table_count):<46s}║
║  Uploads     : {upload_status:<46s}║
║  Rate limits : {storage:<46s}║
║  Provider    : {provider:<46s}║
║  STT key     : {stt_key:<46s}║
║  Summary key : {summary_key:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
