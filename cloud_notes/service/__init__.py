from cloud_notes.service.backend_iface import (
    AuthCategory,
    AuthSubscription,
    BackendClient,
    DataApiCategory,
    StorageCategory,
)

__all__ = [
    "AuthCategory",
    "AuthSubscription",
    "BackendClient",
    "DataApiCategory",
    "StorageCategory",
]
