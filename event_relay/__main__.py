"""Allow ``python -m event_relay``."""

from event_relay.cli.main import main

if __name__ == "__main__":
    main()
