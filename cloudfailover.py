#!/usr/bin/env python3
"""
cloudfailover - address and route failover for an HA device pair

Standalone script to run the failover REST service.
"""

from __future__ import annotations

import asyncio
import sys

from pathlib import Path

# Add src to path so we can import cloudfailover
sys.path.insert(0, str(Path(__file__).parent / "src"))


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
