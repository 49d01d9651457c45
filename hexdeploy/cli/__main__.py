#!/usr/bin/env python3
"""Entry point for the hexdeploy CLI when run as python -m hexdeploy.cli."""

if __name__ == "__main__":
    from hexdeploy.cli.main import main

    main()
