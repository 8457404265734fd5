from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import dataclass
from typing import Any

import httpx


@dataclass
class ClientConfig:
    base_url: str
    username: str
    timeout: float = 10.0


class SyncClient:
    """Minimal client for the task sync API.

    Identity is passed in the headers an upstream auth proxy would inject.
    """

    def __init__(self, cfg: ClientConfig) -> None:
        self._cfg = cfg
        self._http = httpx.Client(
            base_url=cfg.base_url,
            headers={"X-Auth-User": cfg.username},
            timeout=cfg.timeout,
        )

    def close(self) -> None:
        self._http.close()

    def pull(self) -> dict[str, Any]:
        resp = self._http.get("/api/data")
        resp.raise_for_status()
        return dict(resp.json())

    def push(self, tasks: list[Any], version: int, *, force: bool = False) -> httpx.Response:
        return self._http.post(
            "/api/data", json={"tasks": tasks, "version": version, "force": force}
        )

    def test_notification(self) -> httpx.Response:
        return self._http.post("/api/push/test")


def _load_tasks(path: str) -> list[Any]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("tasks", [])
    if not isinstance(data, list):
        raise SystemExit(f"error: {path} does not hold a task list")
    return data


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser("glasstodo-client")
    parser.add_argument("--base-url", default=os.getenv("GLASSTODO_URL", "http://localhost:3000"))
    parser.add_argument("--user", default=os.getenv("GLASSTODO_USER", ""))
    sub = parser.add_subparsers(dest="cmd", required=True)
    sub.add_parser("pull", help="Print the stored task document")
    p_push = sub.add_parser("push", help="Upload a task list from a JSON file")
    p_push.add_argument("file")
    p_push.add_argument("--version", type=int, help="Version the local copy is based on")
    p_push.add_argument("--force", action="store_true", help="Overwrite the cloud copy")
    sub.add_parser("test-push", help="Send a test notification to your devices")
    args = parser.parse_args(argv)

    if not args.user:
        sys.stderr.write("error: --user (or GLASSTODO_USER) is required\n")
        return 2

    client = SyncClient(ClientConfig(base_url=args.base_url, username=args.user))
    try:
        if args.cmd == "pull":
            sys.stdout.write(json.dumps(client.pull(), ensure_ascii=False, indent=2) + "\n")
            return 0
        if args.cmd == "push":
            tasks = _load_tasks(args.file)
            version = args.version
            if version is None:
                # Based on whatever the server has now
                version = int(client.pull().get("version", 0))
            resp = client.push(tasks, version, force=args.force)
            if resp.status_code == 409:
                body = resp.json()
                sys.stderr.write(
                    f"conflict: server is at version {body.get('serverVersion')}; "
                    "pull first or retry with --force\n"
                )
                return 1
            resp.raise_for_status()
            sys.stdout.write(f"saved version {resp.json().get('version')}\n")
            return 0
        resp = client.test_notification()
        if resp.status_code == 404:
            sys.stderr.write("no push subscription registered\n")
            return 1
        resp.raise_for_status()
        sys.stdout.write("test notification sent\n")
        return 0
    except httpx.HTTPError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 1
    finally:
        client.close()


if __name__ == "__main__":
    raise SystemExit(main())
