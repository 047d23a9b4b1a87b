"""Shared pytest setup for the Wagerbook test suite."""

import sys
from pathlib import Path

# Backend package and shared test helpers
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

# Configure logfire before importing modules that use it
import logfire
logfire.configure(send_to_logfire=False, console=False)
