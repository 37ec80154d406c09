"""Start the deployment manager: validate configuration, then serve the webhook listener.

Configuration is read once from ``DEPLOYHOOK_*`` environment variables. The
process exits with status 1 before binding the listener when the repository
owner, name or token is missing. Without ``DEPLOYHOOK_WEBHOOK_SECRET`` every
webhook is accepted unsigned; a banner with setup instructions is logged.
"""
from __future__ import annotations

import argparse
import logging
import os

import uvicorn

from deployhook.main import create_app
from deployhook.models.errors import ConfigError
from deployhook.models.settings import ManagerSettings

LOGGER = logging.getLogger("deployhook.manager")

_BANNER_WIDTH = 60


def _configure_logging() -> None:
    level_name = os.getenv("DEPLOYHOOK_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the deployhook webhook listener.")
    parser.add_argument(
        "--host",
        default=None,
        help="Listen address (default from DEPLOYHOOK_HOST or 0.0.0.0).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listen port (default from DEPLOYHOOK_PORT or 3000).",
    )
    parser.add_argument(
        "--no-initial-build",
        action="store_true",
        help="Skip the build that is otherwise queued at startup.",
    )
    return parser.parse_args(argv)


def _marker(is_set: bool) -> str:
    return "[SET]" if is_set else "[NOT SET]"


def log_configuration(settings: ManagerSettings) -> None:
    """Log a summary of the active configuration without revealing secrets."""

    LOGGER.info("Manager starting...")
    LOGGER.info("Configured owner: %s", settings.git_owner)
    LOGGER.info("Configured repository: %s", settings.git_repo)
    LOGGER.info("Webhook secret: %s", _marker(settings.secret_value is not None))
    LOGGER.info("Access token: %s", _marker(bool(settings.git_token.get_secret_value())))
    LOGGER.info("Working copy: %s", settings.work_dir)
    LOGGER.info("Serve directory: %s", settings.serve_dir)


def insecure_mode_banner(settings: ManagerSettings) -> str:
    """Return the instructions shown when webhook signatures are not checked."""

    rule = "*" * _BANNER_WIDTH
    lines = [
        rule,
        "IMPORTANT: DEPLOYHOOK_WEBHOOK_SECRET is not defined!",
        "Webhook requests are accepted WITHOUT signature verification.",
        "To secure automatic updates, set up a webhook with a secret:",
        f"1. Go to {settings.git_base_url}/{settings.repository_slug}/settings/hooks",
        '2. Click "Add webhook"',
        "3. Payload URL: http://<your-server-ip>/webhook",
        "4. Content type: application/json",
        "5. Secret: choose one and set it in DEPLOYHOOK_WEBHOOK_SECRET",
        '6. Which events? Just the "push" event.',
        rule,
    ]
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    _configure_logging()
    args = _parse_args(argv)

    try:
        settings = ManagerSettings.from_env()
    except ConfigError as exc:
        LOGGER.error("ERROR: %s", exc)
        return 1

    overrides: dict[str, object] = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if args.no_initial_build:
        overrides["build_on_startup"] = False
    if overrides:
        settings = settings.model_copy(update=overrides)

    log_configuration(settings)
    if settings.secret_value is None:
        LOGGER.warning("\n%s", insecure_mode_banner(settings))
    else:
        LOGGER.info("Webhook secret is configured. Automatic updates enabled.")

    app = create_app(settings)
    LOGGER.info("Starting webhook listener on %s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return 0


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
