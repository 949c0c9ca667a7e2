from meetrelay.backend.client import BackendClient, BackendError, BackendUnavailableError

__all__ = ["BackendClient", "BackendError", "BackendUnavailableError"]
