"""XRDS service description parsing."""
