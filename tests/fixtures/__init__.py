"""Test fixtures package for mcctree.

- directory: in-memory account directory that can fail, hang or loop on demand
"""
