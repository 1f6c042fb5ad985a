"""Root-level conftest.py: its presence puts the repository root on sys.path,
so tests import the working tree's airdeck package without an install."""
