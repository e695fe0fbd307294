#!/usr/bin/env python3
"""
discobot HTTP Server Runner
"""

import os

from discobot.crosscutting.logging import setup_logging
from discobot.interfaces.http import HTTPServer


def main():
    """Run the HTTP server."""
    setup_logging(os.getenv('DISCOBOT_LOG_LEVEL', 'INFO'), os.getenv('DISCOBOT_LOG_FILE'))
    server = HTTPServer(
        host=os.getenv('DISCOBOT_HOST', 'localhost'),
        port=int(os.getenv('DISCOBOT_PORT', '3000')),
    )
    server.run()


if __name__ == '__main__':
    main()
