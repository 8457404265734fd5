from __future__ import annotations

from glasstodo.config import load_config

from .app import create_app_from_config

app = create_app_from_config(load_config())
