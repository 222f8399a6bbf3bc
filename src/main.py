"""
Main application entry point for the chat gateway.
"""

# Standard library imports
import argparse
import os
import sys
from pathlib import Path

import uvicorn

# Third-party imports
from dotenv import load_dotenv

# Local imports
from common.config import Config, load_config
from common.logging import get_logger, setup_logging
from gateway.auth import JWTAuthenticator
from gateway.websocket import create_gateway_app

# Load environment variables from .env file at module level
load_dotenv()

logger = get_logger(__name__)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Chess academy chat gateway")
    parser.add_argument("--port", type=int, help="Override the port to run on")
    parser.add_argument("--host", type=str, help="Override the host to run on")
    parser.add_argument("--config", type=str, help="Path to config.yaml")
    return parser.parse_args()


def validate_startup_configuration(config: Config) -> bool:
    """
    Validate configuration at startup.

    Returns:
        True if valid, False otherwise
    """
    if not os.environ.get("JWT_SECRET"):
        logger.error(event="config_validation_failed", reason="JWT_SECRET is not set")
        return False

    chat = config.chat
    if chat.typing_timeout <= 0 or chat.presence_debounce < 0:
        logger.error(
            event="config_validation_failed",
            reason="typing_timeout must be positive and presence_debounce non-negative",
        )
        return False

    if not 1 <= chat.history_page_size <= chat.history_max_page_size:
        logger.error(
            event="config_validation_failed",
            reason="history_page_size must be between 1 and history_max_page_size",
        )
        return False

    logger.info(
        event="config_validation_passed",
        gateway_host=config.gateway.host,
        gateway_port=config.gateway.port,
        batch_rooms=len(config.permissions.batch_members),
    )
    return True


def main() -> None:
    """Main entry point."""
    try:
        args = parse_args()

        config = load_config(Path(args.config) if args.config else None)

        setup_logging(config)

        # Fail fast before binding the port
        if not validate_startup_configuration(config):
            logger.critical(event="startup_failed", reason="Configuration validation failed")
            sys.exit(1)

        authenticator = JWTAuthenticator(os.environ["JWT_SECRET"], config.auth)
        app = create_gateway_app(config, authenticator=authenticator)

        host = args.host or config.gateway.host
        port = args.port or config.gateway.port

        logger.info(event="starting_server", host=host, port=port)

        uvicorn.run(
            app,
            host=host,
            port=port,
            log_config=None,  # Use our custom logging setup
            access_log=False,
        )

    except KeyboardInterrupt:
        logger.info(event="application_shutdown", reason="Keyboard interrupt")
    except SystemExit as e:
        if e.code == 1:
            logger.critical(event="application_failed", reason="Startup checks failed")
        else:
            logger.info(event="application_shutdown", exit_code=e.code)
        raise
    except Exception as e:
        logger.critical(event="application_crashed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    main()
