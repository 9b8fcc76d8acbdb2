#!/usr/bin/env python3
"""
Banking Core Entry Point

Starts the FastAPI server with the banking core. Host and port come from
BANKING_API_HOST / BANKING_API_PORT; BANKING_ENCRYPTION_KEY must be set.
"""

import sys

from banking_core.api import run_server
from banking_core.errors import UnconfiguredError


if __name__ == "__main__":
    print("🏦 Starting Banking Core...")
    print("🔒 PII encrypted at rest")
    print("💰 Balances kept in integer cents")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\n👋 Shutting down Banking Core...")
    except UnconfiguredError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(1)
