"""Plugins shipped with tack.

Any ``<name>.wasm`` file placed in this directory at build time is
discovered as a bundled plugin. Local plugins of the same name take
precedence.
"""
