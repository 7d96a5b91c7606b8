class EventStoreError(Exception):
    """
    Raised when the backing storage cannot serve a request (unreachable,
    write refused, corrupt slot). Never used to signal "not found".
    """
    pass
