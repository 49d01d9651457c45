"""hexdeploy command-line interface."""
