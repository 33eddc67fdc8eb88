"""
ripple.api.__main__ — Entry point for ``python -m ripple.api``
===============================================================

Serves :data:`ripple.api.main.app` with uvicorn on ``api_port`` from
config.yaml.  Equivalent to::

    uvicorn ripple.api.main:app --port 8000
"""

from __future__ import annotations

import logging

import uvicorn
from dotenv import load_dotenv

from ripple.config import load_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)


def main() -> None:
    load_dotenv()
    cfg = load_config()
    uvicorn.run("ripple.api.main:app", host="0.0.0.0", port=cfg.api_port)


if __name__ == "__main__":
    main()
