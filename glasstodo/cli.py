from __future__ import annotations

import argparse
import asyncio
import json
import sys

from glasstodo.config import ServerConfig, load_config


def serve(cfg: ServerConfig, host: str | None, port: int | None) -> int:
    import uvicorn

    from glasstodo.gateway.app import create_app_from_config

    app = create_app_from_config(cfg)
    uvicorn.run(app, host=host or cfg.host, port=port or cfg.port)
    return 0


def scan(cfg: ServerConfig) -> int:
    """Run a single reminder scan against the configured storage and print the report."""
    from glasstodo.gateway.app import create_app_from_config

    app = create_app_from_config(cfg)
    if not app.state.dispatcher.is_configured:
        sys.stderr.write("push is not configured; nothing to scan\n")
        return 1
    report = asyncio.run(app.state.scanner.scan_once())
    sys.stdout.write(json.dumps(report.as_dict()) + "\n")
    return 0


def vapid(cfg: ServerConfig) -> int:
    """Resolve (or create and persist) the VAPID identity and print the public key."""
    from glasstodo.gateway.app import resolve_push_config
    from glasstodo.store.redis_store import RedisSettingsStore

    settings = RedisSettingsStore(url=cfg.redis_url, key_prefix=cfg.key_prefix)
    push = resolve_push_config(settings, cfg)
    if not push.is_configured:
        sys.stderr.write("push is not configured\n")
        return 1
    sys.stdout.write(f"{push.public_key}\n")
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser("glasstodo")
    sub = parser.add_subparsers(dest="cmd")

    p_serve = sub.add_parser("serve", help="Run the HTTP gateway with the reminder scanner")
    p_serve.add_argument("--host")
    p_serve.add_argument("--port", type=int)

    sub.add_parser("scan", help="Run one reminder scan and print the report as JSON")
    sub.add_parser("vapid", help="Ensure push signing keys exist and print the public key")

    args = parser.parse_args(argv)
    cmd = str(getattr(args, "cmd", None) or "")
    cfg = load_config()

    if cmd == "serve":
        raise SystemExit(serve(cfg, args.host, args.port))
    if cmd == "scan":
        raise SystemExit(scan(cfg))
    if cmd == "vapid":
        raise SystemExit(vapid(cfg))

    parser.print_help()


if __name__ == "__main__":
    main()
