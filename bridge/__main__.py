"""
Bridge 진입점

실행 방법:
    python -m bridge
"""

import asyncio

from bridge.bootstrap import main

if __name__ == "__main__":
    asyncio.run(main())
