"""Allow ``python -m rank_sampler``."""

from rank_sampler.cli import main

main()
