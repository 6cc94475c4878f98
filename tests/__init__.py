"""Test-suite for the ranked-feed sampler."""
