"""Allow ``python -m agent_bridge``."""

from agent_bridge.cli.cli import main

if __name__ == "__main__":
    main()
