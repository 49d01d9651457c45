"""Entry point for python -m hexdeploy."""

if __name__ == "__main__":
    from hexdeploy.cli.main import main

    main()
