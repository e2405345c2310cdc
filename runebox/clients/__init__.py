from runebox.clients.catalog import CatalogClient, CatalogClientOptions

__all__ = [
    "CatalogClient",
    "CatalogClientOptions",
]
