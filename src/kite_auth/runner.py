"""kite_auth: automated two-factor login for Kite Connect.

Reads credentials and endpoints from the environment (or a ``.env`` file in the
working directory), drives the browser through login and OTP entry, and waits
for the redirect to the configured destination.
"""

import asyncio
import sys

from dotenv import load_dotenv

from kite_auth.auth.login import perform_login
from kite_auth.config import ConfigError, load_config
from kite_auth.log import configure_logging, logger


def main() -> int:
    load_dotenv()
    try:
        config = load_config()
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1

    configure_logging(config.log_level)
    # Flow failures are logged by the flow itself; they do not change the exit status.
    asyncio.run(perform_login(config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
