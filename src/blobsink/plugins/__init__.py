"""Output pipeline stages (envelope, formats, compression) and storage providers."""
