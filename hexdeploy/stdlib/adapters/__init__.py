"""Adapters implementing the hexdeploy ports."""
