# src/quadfund/api/__main__.py
from __future__ import annotations

import uvicorn

from quadfund.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so QUADFUND_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from quadfund.api.app import create_app
    from quadfund.runtime.fund_config import load_fund_config

    cfg = load_fund_config()
    app = create_app(cfg=cfg)

    uvicorn.run(app, host=cfg.api_host, port=int(cfg.api_port), log_level=cfg.log_level.strip().lower())


if __name__ == "__main__":
    main()
