"""agent-relay entry point.

Supports: python -m agent_relay
"""

from .app import main

if __name__ == "__main__":
    main()
