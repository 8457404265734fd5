from __future__ import annotations

import os
import sys

import uvicorn

# Ensure project root is on sys.path when running as a script
_THIS_DIR = os.path.dirname(__file__)
_PROJECT_ROOT = os.path.abspath(os.path.join(_THIS_DIR, os.pardir))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from glasstodo.config import load_config  # noqa: E402
from glasstodo.gateway.app import create_app, resolve_push_config  # noqa: E402
from glasstodo.store.memory import (  # noqa: E402
    InMemorySettingsStore,
    InMemorySubscriptionRegistry,
    InMemoryTaskStore,
)


def main() -> None:
    """Run the gateway and reminder scanner in-process without Redis.

    Everything lives in memory and is gone on exit; VAPID keys are generated fresh
    unless provided through the environment.
    """
    cfg = load_config()
    push = resolve_push_config(InMemorySettingsStore(), cfg)
    app = create_app(
        tasks=InMemoryTaskStore(),
        subscriptions=InMemorySubscriptionRegistry(),
        push=push,
        config=cfg,
    )
    server = uvicorn.Server(
        uvicorn.Config(
            app, host=cfg.host, port=cfg.port, log_level=os.getenv("LOG_LEVEL", "info").lower()
        )
    )
    server.run()


if __name__ == "__main__":
    main()
