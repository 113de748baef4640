from . import DecisionMCPServer
from .config import SERVER_VERSION

import asyncio
import sys

__version__ = SERVER_VERSION


def main():
    """Main entry point for the package."""
    # Skip argument parsing when running tests
    if 'pytest' in sys.modules:
        return
    asyncio.run(DecisionMCPServer.main())


# Optionally expose other important items at package level
__all__ = ['main', 'DecisionMCPServer', 'ToolRegistry', 'ToolReconciler', 'PollScheduler', 'Configuration']
