#!/usr/bin/env python3
"""
Local development runner for Naybourhood.
Runs the API server with debug logging under ./logs and background polling.
"""

import os
import sys
import logging
from pathlib import Path

# Ensure we're in the right directory
os.chdir(Path(__file__).parent)

sys.path.insert(0, str(Path(__file__).parent))

from naybourhood.config import load_config
from naybourhood.main import Application, setup_logging
from naybourhood.server import create_app, run_server


def main():
    """Main entry point for local development."""
    config = load_config()

    # Override log directory and state file for local development
    config.log_dir = str(Path(__file__).parent / "logs")
    config.state_file = str(Path(__file__).parent / "logs" / "naybourhood_state.json")

    setup_logging(config.log_dir, debug=True)

    logger = logging.getLogger(__name__)
    logger.info("Starting Naybourhood in local development mode")

    errors = config.validate()
    if errors:
        logger.error("Configuration errors found:")
        for error in errors:
            logger.error(f"  - {error}")
        print("\nPlease create a .env file with your API keys.")
        sys.exit(1)

    application = Application(config)

    print("\nTesting API connections...")
    for service, success in application.test_connections().items():
        status = "SKIPPED" if success is None else ("OK" if success else "FAILED")
        print(f"  {service}: {status}")

    print(f"\nStore backend: {config.store_backend}")
    print(f"API running at http://{config.server_host}:{config.server_port}")
    print("Press Ctrl+C to stop\n")

    application.start_polling()
    try:
        run_server(create_app(application), config.server_host, config.server_port, debug=False)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        application.stop()


if __name__ == "__main__":
    main()
