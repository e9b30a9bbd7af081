"""One-time Google OAuth consent; stores the refresh token in .env.

Usage:
    abb-google-auth [--port 3000]

Needs GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET of a "Desktop app" OAuth
client. Opens the consent screen in a browser and listens on localhost
for the redirect.
"""
from __future__ import annotations

import argparse
import logging
import sys

from google_auth_oauthlib.flow import InstalledAppFlow

from abb_automation.config import DOTENV_PATH, Settings, configure_logging, upsert_dotenv
from abb_automation.errors import AutomationError, ConfigError
from abb_automation.google_workspace import SCOPES, TOKEN_URI

logger = logging.getLogger(__name__)


def client_config(settings: Settings) -> dict:
    return {
        "installed": {
            "client_id": settings.require("google_client_id"),
            "client_secret": settings.require("google_client_secret"),
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": TOKEN_URI,
        }
    }


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Authorize Google Workspace access")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--no-browser", action="store_true",
                        help="Print the consent URL instead of opening a browser")
    args = parser.parse_args(argv)
    configure_logging()

    try:
        flow = InstalledAppFlow.from_client_config(client_config(Settings.from_env()), SCOPES)
        # consent prompt forces Google to return a refresh token every time
        creds = flow.run_local_server(port=args.port, open_browser=not args.no_browser,
                                      access_type="offline", prompt="consent")
        if not creds.refresh_token:
            raise ConfigError("Google returned no refresh token. Revoke the app's access and retry.")
        upsert_dotenv({
            "GOOGLE_REFRESH_TOKEN": creds.refresh_token,
            "GOOGLE_REDIRECT_URI": flow.redirect_uri,
        })
    except AutomationError as exc:
        logger.error("Google auth failed: %s", exc)
        sys.exit(1)
    logger.info("Refresh token saved to %s", DOTENV_PATH)


if __name__ == "__main__":
    main()
