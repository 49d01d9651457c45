"""hexdeploy kernel: domain model, ports, configuration and orchestration.

User-space code (``hexdeploy.cli`` and applications embedding the engine)
imports from here; ``hexdeploy.stdlib`` may import kernel submodules freely.
"""
