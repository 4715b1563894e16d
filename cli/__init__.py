"""Command line for feeding samples to the device rollup service and reading results.

Commands are defined in ``cli.app``. The Typer instance is not re-exported
here so that ``cli.app`` keeps resolving to the module, which the tests patch.
"""
