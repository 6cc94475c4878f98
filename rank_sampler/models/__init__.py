"""Data models for feed items and samples."""
