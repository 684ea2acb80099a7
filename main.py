# main.py
"""
Pulseboard Desktop Entry Point — v1.0.0

Opens the dashboard window against a running Pulseboard API
(PULSE_API_URL, default http://127.0.0.1:5000).
"""

import logging

from system.config import Config
from ui.api_client import PulseClient
from ui.dashboard_session import DashboardSession
from ui.dashboard_ui import DashboardApp
from ui.local_storage import LocalStorage


def main():
    # Load configuration
    config = Config.load()
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print(f"[Pulseboard] API at {config.api_url}", flush=True)

    client = PulseClient(config.api_url)
    storage = LocalStorage(config.data_dir / "local_storage.json")
    session = DashboardSession(client, storage, poll_seconds=config.poll_seconds)

    app = DashboardApp(session)
    app.run()


if __name__ == "__main__":
    main()
