#!/usr/bin/env python3
"""
Mulch fundraiser dev launcher.

- Local dev:             ./run.py --env development
- Local dev (no reload): ./run.py --env development --no-reload
- Production:            use gunicorn "wsgi:app"
"""

from __future__ import annotations

import argparse
import logging
import os
import socket

from dotenv import load_dotenv

load_dotenv(override=False)


def _port_in_use(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(0.5)
        return s.connect_ex(("127.0.0.1" if host in {"0.0.0.0", ""} else host, port)) == 0


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run the mulch fundraiser Flask app.")
    p.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    p.add_argument("--port", type=int, default=int(os.getenv("PORT", "5000")))
    p.add_argument("--env", choices=["development", "testing", "production"], default=os.getenv("APP_ENV", "development"))
    p.add_argument("--no-reload", action="store_true", help="Disable Werkzeug reloader.")
    p.add_argument("--force", dest="force_run", action="store_true", help="Start even if the port looks busy.")
    p.add_argument("--print-routes", action="store_true")
    return p.parse_args()


def main() -> None:
    args = parse_args()
    os.environ["APP_ENV"] = args.env

    if not args.force_run and _port_in_use(args.host, args.port):
        logging.error("Port %s already in use (host=%s). Stop the other process or use --force.", args.port, args.host)
        raise SystemExit(2)

    from fundraiser import create_app

    app = create_app(args.env)

    if args.print_routes:
        for rule in sorted(app.url_map.iter_rules(), key=lambda r: r.rule):
            methods = ",".join(sorted(m for m in rule.methods if m not in {"HEAD", "OPTIONS"}))
            print(f"{methods:<12} {rule.rule}")

    debug = args.env != "production"
    app.run(host=args.host, port=args.port, debug=debug, use_reloader=debug and not args.no_reload)


if __name__ == "__main__":
    main()
