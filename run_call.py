#!/usr/bin/env python3
"""
Start one duplex call from the command line.

Install first (`pip install -e .`), then:
    python run_call.py

Equivalent to:
    python -m duplex_call
"""

import asyncio

from duplex_call.__main__ import main


if __name__ == "__main__":
    asyncio.run(main())
