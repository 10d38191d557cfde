#!/usr/bin/env python3
"""
cloudfailover CLI Entry Point

Allows running the failover service as a module: python -m cloudfailover
"""

from __future__ import annotations

import asyncio
import sys

from cloudfailover.core.service import main as cloudfailover_main

if __name__ == "__main__":
    try:
        asyncio.run(cloudfailover_main())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)
    except Exception as e:
        print(f"Fatal error: {e.__class__.__name__}: {e}")
        sys.exit(1)
