#!/usr/bin/env python3
"""
Paper mode launcher script.

Launches the signal bot with the paper.yaml configuration. Decisions are
recorded and pushed to the operator channel; nothing is ever traded.
"""

import asyncio
import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from signalbot.runner.pipeline import main


if __name__ == "__main__":
    sys.argv = ["signalbot", "--config", "configs/paper.yaml", "--profile", "paper"]

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nSignal bot stopped by user.")
        sys.exit(0)
    except Exception as e:
        print(f"Error running signal bot: {e}")
        sys.exit(1)
