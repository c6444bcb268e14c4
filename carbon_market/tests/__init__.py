"""Test suite for the carbon market backend."""
