"""
Command line interface to the kernel monitor
"""

from .cli import run

run()
