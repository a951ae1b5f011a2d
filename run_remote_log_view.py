#!/usr/bin/env python3
"""Entry point for running from a source checkout.

We import the package module so relative imports inside remote_log_view.main work
(running src/remote_log_view/main.py directly would not).
"""

from remote_log_view.main import main

if __name__ == "__main__":
    raise SystemExit(main())
