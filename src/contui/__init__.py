"""
ConTUI

A terminal chat client that lets a text-generation model create, read and
edit files, list directories, show diffs and run confirmed shell commands
by writing action blocks in its replies.
"""

__version__ = "1.0.0"
