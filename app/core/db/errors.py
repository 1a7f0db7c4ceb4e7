class StoreError(Exception):
    """Raised when the history store cannot be read or written."""
