"""Test doubles for nicswap."""
