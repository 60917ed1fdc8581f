"""Record store: catalog and order management service."""
