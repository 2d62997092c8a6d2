"""Disposable test identity accounts for IdP federation testing."""
