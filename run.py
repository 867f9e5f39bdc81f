#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Zonta Naples backend: local launcher.

- Local dev:             ./run.py --env development
- Local dev (no reload): ./run.py --env development --no-reload
- Gunicorn:              gunicorn "wsgi:app"
"""

from __future__ import annotations

import argparse
import logging
import os
import socket
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


def _env_bool(name: str) -> Optional[bool]:
    """Return bool for env var if set, otherwise None."""
    v = os.getenv(name)
    if v is None:
        return None
    vv = str(v).strip().lower()
    if vv in {"1", "true", "yes", "y", "on"}:
        return True
    if vv in {"0", "false", "no", "n", "off"}:
        return False
    return None


def _normalize_env_name(v: str) -> str:
    r = (v or "").strip().lower()
    if r in {"dev", "development", "local"}:
        return "development"
    if r in {"test", "testing"}:
        return "testing"
    if r in {"prod", "production"}:
        return "production"
    return r or "development"


def load_env_stack(env: str) -> List[Path]:
    """
    .env, then .env.<env>. override=False so OS env vars always win (prod-safe).
    """
    loaded: List[Path] = []
    for p in (Path(".env"), Path(f".env.{env}")):
        if p.is_file():
            load_dotenv(p, override=False)
            loaded.append(p)
    return loaded


def _port_in_use(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(0.5)
        return s.connect_ex((host if host != "0.0.0.0" else "127.0.0.1", port)) == 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run the Zonta Naples API")
    p.add_argument("--env", default=os.getenv("APP_ENV") or os.getenv("ENV") or "development")
    p.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    p.add_argument("--port", type=int, default=int(os.getenv("PORT", "5000")))
    p.add_argument("--no-reload", action="store_true", help="Disable the Werkzeug reloader.")
    p.add_argument("--force", action="store_true", help="Start even if the port looks busy.")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    env = _normalize_env_name(args.env)

    loaded = load_env_stack(env)
    os.environ["ENV"] = env
    os.environ["APP_ENV"] = env

    debug = _env_bool("FLASK_DEBUG")
    if debug is None:
        debug = env == "development"

    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO)
    log = logging.getLogger("run")
    for p in loaded:
        log.info("Loaded %s", p)

    if not args.force and _port_in_use(args.host, args.port):
        log.error("Port %s already in use (host=%s). Stop the other process or use --force.", args.port, args.host)
        raise SystemExit(2)

    from zonta import create_app

    app = create_app()
    if env == "production" and debug:
        log.warning("Debug is ON in production; refusing to enable the debugger.")
        debug = False

    app.run(host=args.host, port=args.port, debug=debug, use_reloader=debug and not args.no_reload)


if __name__ == "__main__":
    main()
