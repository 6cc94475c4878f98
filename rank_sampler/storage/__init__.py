"""Output sinks for samples."""
